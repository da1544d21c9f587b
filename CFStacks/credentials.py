"""
AWS shared credentials file profiles.
"""

import configparser
import os
from typing import Dict, Optional

from .errors import StackForgeError

CREDENTIALS_FILE_PATH = os.path.join(os.path.expanduser('~'), '.aws', 'credentials')

ALLOWED_KEYS = {
    'aws_access_key_id',
    'aws_secret_access_key',
    'role_arn',
    'source_profile',
    'mfa_serial',
    'external_id'
}


class CredentialsFileError(StackForgeError):
    """Raised when the shared credentials file is missing"""
    pass


def fetch_profiles(path: Optional[str] = None) -> Dict[str, Dict[str, str]]:
    """
    Read the profiles of the shared credentials file.

    Args:
        path: Credentials file (default: ~/.aws/credentials)

    Returns:
        Profile name -> allowed keys of that profile; profiles without any
        allowed key are dropped
    """
    path = path or CREDENTIALS_FILE_PATH
    if not os.path.exists(path):
        raise CredentialsFileError(f"file does not exist {path}")

    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(path, encoding='utf-8')
    except configparser.Error as e:
        raise CredentialsFileError(f"can not parse {path}: {e}")

    profiles = {}
    for name in parser.sections():
        profile = {
            key: value.strip()
            for key, value in parser.items(name)
            if key in ALLOWED_KEYS
        }
        if profile:
            profiles[name] = profile
    return profiles
