"""Infrastructure layer exports."""

from .clock import Clock, IdGenerator, SystemClock, UUIDGenerator
from .connecteam import (
    ConnectTeamClient,
    ConnectTeamError,
    configure_connecteam_client,
    get_connecteam_client,
)
from .stores import (
    InMemoryJobStore,
    InMemoryMaterialStore,
    InMemorySubmissionStore,
    JobStore,
    MaterialStore,
    SubmissionStore,
)

__all__ = [
    "Clock",
    "ConnectTeamClient",
    "ConnectTeamError",
    "IdGenerator",
    "InMemoryJobStore",
    "InMemoryMaterialStore",
    "InMemorySubmissionStore",
    "JobStore",
    "MaterialStore",
    "SubmissionStore",
    "SystemClock",
    "UUIDGenerator",
    "configure_connecteam_client",
    "get_connecteam_client",
]
