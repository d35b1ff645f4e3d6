"""Subsystem rebuilds: what each managed part of the host should look like."""

from __future__ import annotations

from .base import HostLayout, SubsystemContext, SubsystemReconciler
from .dns import DnsReconciler
from .fail2ban import Fail2banReconciler
from .ftp import FtpReconciler
from .groups import GroupDatabaseReconciler, GroupEntry
from .mail_filter import MailFilterReconciler
from .shared_ftp import SharedFtpReconciler
from .timezone import TimeZoneReconciler

SUBSYSTEMS: tuple[type[SubsystemReconciler], ...] = (
    DnsReconciler,
    FtpReconciler,
    SharedFtpReconciler,
    MailFilterReconciler,
    Fail2banReconciler,
    TimeZoneReconciler,
    GroupDatabaseReconciler,
)

__all__ = [
    "SUBSYSTEMS",
    "DnsReconciler",
    "Fail2banReconciler",
    "FtpReconciler",
    "GroupDatabaseReconciler",
    "GroupEntry",
    "HostLayout",
    "MailFilterReconciler",
    "SharedFtpReconciler",
    "SubsystemContext",
    "SubsystemReconciler",
    "TimeZoneReconciler",
]
