"""Ports for reading the authoritative host description."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable
    from types import TracebackType

    from hostconf.domain.model import (
        AppProtocol,
        BillingPackage,
        DnsZone,
        EmailDomain,
        Host,
        HttpdSite,
        LinuxGroup,
        NetBind,
        SmtpRelay,
    )


@runtime_checkable
class HostSnapshot(Protocol):
    """Consistent read-only view of the data store for one rebuild pass.

    Every query issued between ``__enter__`` and ``__exit__`` observes the same
    state of the store; implementations release their connection on exit.
    """

    def __enter__(self) -> HostSnapshot: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def host(self) -> Host: ...

    def net_binds(self, app_protocol: AppProtocol | None = None) -> list[NetBind]: ...

    def dns_zones(self) -> list[DnsZone]: ...

    def ftp_guest_users(self) -> list[str]: ...

    def groups(self) -> list[LinuxGroup]: ...

    def email_domains(self) -> list[EmailDomain]: ...

    def billing_packages(self, names: Iterable[str]) -> dict[str, BillingPackage]: ...

    def smtp_relays(self) -> list[SmtpRelay]: ...

    def httpd_sites(self) -> list[HttpdSite]: ...


type SnapshotFactory = Callable[[], HostSnapshot]
