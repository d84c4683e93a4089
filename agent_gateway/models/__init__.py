# Models package
from .pairing_code import PairingCode
from .device import Device
from .activity import ActivityBatch, ActivityEvent, ActivityEventType
from .project import Project
from .time_entry import TimeEntry, TimeEntryStatus
from .screenshot import Screenshot, ScreenshotStatus

__all__ = [
    'PairingCode', 'Device', 'ActivityBatch', 'ActivityEvent', 'ActivityEventType',
    'Project', 'TimeEntry', 'TimeEntryStatus', 'Screenshot', 'ScreenshotStatus',
]
