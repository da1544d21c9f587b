"""
Stack descriptor models shared by the inventory, graph builder and orchestrator.
"""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional


class ParentReference(BaseModel):
    parameter_name: str  # e.g. ParentVPCStack
    stack_name: str


class StackDescriptor(BaseModel):
    account_id: str
    region: str
    name: str
    parameters: Dict[str, str] = Field(default_factory=dict)
    parent_references: List[ParentReference] = Field(default_factory=list)
    template_id: Optional[str] = None
    template_version: Optional[str] = None  # None = unreleased template
    template_latest_version: Optional[str] = None
    template_drift_detected: Optional[bool] = None
    update_available: Optional[bool] = None

    @property
    def version_label(self) -> str:
        """Template version, with the latest release appended when an update is available."""
        if self.update_available is True:
            return f"{self.template_version} (latest {self.template_latest_version})"
        return self.template_version or ''
