"""
Runtime configuration loaded from the environment and an optional .env file.
"""
import os
from dotenv import load_dotenv

# .env values take precedence over the process environment
load_dotenv(override=True)

RELEASES_BUCKET = os.getenv('STACKFORGE_RELEASES_BUCKET', 'widdix-aws-cf-templates-releases-eu-west-1')

STACKFORGE_CONFIG = {
    'releases_bucket': RELEASES_BUCKET,
    'template_url_prefix': os.getenv(
        'STACKFORGE_TEMPLATE_URL_PREFIX',
        f'https://s3-eu-west-1.amazonaws.com/{RELEASES_BUCKET}'
    ),
    'releases_feed_url': os.getenv(
        'STACKFORGE_RELEASES_FEED_URL',
        'https://github.com/widdix/aws-cf-templates/releases.atom'
    ),
    'default_region': os.getenv('STACKFORGE_DEFAULT_REGION', 'us-east-1'),
    'log_file': os.getenv('STACKFORGE_LOG_FILE', 'stackforge.log'),
    'event_timeout_seconds': int(os.getenv('STACKFORGE_EVENT_TIMEOUT', 60 * 60)),
    'event_poll_seconds': float(os.getenv('STACKFORGE_EVENT_POLL_INTERVAL', 1)),
    'max_workers': int(os.getenv('STACKFORGE_MAX_WORKERS', 8)),
    'download_attempts': int(os.getenv('STACKFORGE_DOWNLOAD_ATTEMPTS', 5)),
    'download_retry_delay': float(os.getenv('STACKFORGE_DOWNLOAD_RETRY_DELAY', 1)),
}
