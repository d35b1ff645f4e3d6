"""Anonymous FTP directories under ``/var/ftp/pub``, one per web site."""

from __future__ import annotations

from typing import TYPE_CHECKING

from hostconf.domain.reconciliation import ensure_directory

from .base import SubsystemReconciler

if TYPE_CHECKING:
    from hostconf.domain.reconciliation import RebuildPass

SHARED_DIRECTORY = "/var/ftp/pub"
SITE_MODE = 0o775
DISABLED_MODE = 0o700


class SharedFtpReconciler(SubsystemReconciler):
    name = "shared-ftp"
    sources = ("host", "httpd_site")

    def rebuild(self, rebuild_pass: RebuildPass) -> None:
        with self.context.snapshots() as snapshot:
            self.require_supported(snapshot.host())
            sites = [site for site in snapshot.httpd_sites() if site.anonymous_ftp]

        shared = self.layout.path(SHARED_DIRECTORY)
        if sites and ensure_directory(
            shared, uid=self.layout.root_uid, gid=self.layout.root_gid, mode=0o755
        ):
            rebuild_pass.mark_changed()
        keep: set[str] = set()
        for site in sites:
            directory = shared / site.name
            if site.disabled:
                modified = ensure_directory(
                    directory,
                    uid=self.layout.root_uid,
                    gid=self.layout.root_gid,
                    mode=DISABLED_MODE,
                )
            else:
                modified = ensure_directory(directory, uid=site.uid, gid=site.gid, mode=SITE_MODE)
            if modified:
                rebuild_pass.relabel.add(directory)
                rebuild_pass.mark_changed()
            keep.add(site.name)
        rebuild_pass.trim(shared, keep, owned=True)
