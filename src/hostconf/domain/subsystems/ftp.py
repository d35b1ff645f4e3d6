"""vsftpd: the main config, the chroot list and one config per FTP bind."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from hostconf.domain.errors import SnapshotError
from hostconf.domain.model import AppProtocol, NetProtocol, OperatingSystem
from hostconf.domain.reconciliation import ManagedArtifact, ensure_directory

from .base import SubsystemReconciler

if TYPE_CHECKING:
    from hostconf.domain.model import FtpPrivateServer, NetBind
    from hostconf.domain.reconciliation import RebuildPass

log = getLogger(__name__)

CONF_FILE = "/etc/vsftpd/vsftpd.conf"
CHROOT_LIST = "/etc/vsftpd/chroot_list"
VHOSTS_DIRECTORY = "/etc/vsftpd/vhosts"
CONF_MODE = 0o600


def _yes(flag: bool) -> str:
    return "YES" if flag else "NO"


def render_vsftpd_conf(
    *,
    banner_host: str,
    anonymous: bool = True,
    private: FtpPrivateServer | None = None,
) -> bytes:
    lines = [
        "# BOOLEAN OPTIONS",
        f"anonymous_enable={_yes(anonymous)}",
        "async_abor_enable=YES",
        "chroot_list_enable=YES",
        "connect_from_port_20=YES",
        "dirmessage_enable=YES",
        f"hide_ids={_yes(anonymous)}",
        "local_enable=YES",
        "ls_recurse_enable=NO",
        f"text_userdb_names={_yes(not anonymous)}",
        "userlist_enable=YES",
        "write_enable=YES",
        "xferlog_enable=YES",
        "xferlog_std_format=YES",
        "",
        "# NUMERIC OPTIONS",
        "accept_timeout=60",
        "anon_max_rate=125000",
        "connect_timeout=60",
        "data_connection_timeout=7200",
        "idle_session_timeout=7200",
        "local_umask=002",
        "pasv_max_port=50175",
        "pasv_min_port=49152",
        "",
        "# STRING OPTIONS",
        f"chroot_list_file={CHROOT_LIST}",
    ]
    if private is not None:
        lines.append(f"ftp_username={private.ftp_username}")
    lines += [f"ftpd_banner=FTP Host [{banner_host}]", "pam_service_name=vsftpd"]
    if private is not None:
        lines.append(f"xferlog_file={private.logfile}")
    return ("\n".join(lines) + "\n").encode("utf-8")


def vhost_filename(bind: NetBind) -> str:
    return f"vsftpd_{bind.ip_address}_{bind.port}.conf"


class FtpReconciler(SubsystemReconciler):
    name = "ftp"
    sources = ("host", "net_bind", "ftp_private_server", "ftp_guest_user")
    supported = frozenset({OperatingSystem.CENTOS_5})

    def rebuild(self, rebuild_pass: RebuildPass) -> None:
        with self.context.snapshots() as snapshot:
            host = snapshot.host()
            self.require_supported(host)
            guests = snapshot.ftp_guest_users()
            binds = snapshot.net_binds(AppProtocol.FTP)

        uid = self.layout.root_uid
        gid = self.layout.root_gid
        chroot_list = "".join(f"{user}\n" for user in guests).encode("utf-8")
        rebuild_pass.commit(
            ManagedArtifact(
                path=self.layout.path(CHROOT_LIST),
                content=chroot_list,
                uid=uid,
                gid=gid,
                mode=CONF_MODE,
            )
        )
        rebuild_pass.commit(
            ManagedArtifact(
                path=self.layout.path(CONF_FILE),
                content=render_vsftpd_conf(banner_host=host.hostname),
                uid=uid,
                gid=gid,
                mode=CONF_MODE,
            )
        )

        vhosts = self.layout.path(VHOSTS_DIRECTORY)
        if ensure_directory(vhosts, uid=uid, gid=gid, mode=0o700):
            rebuild_pass.mark_changed()

        filenames: set[str] = set()
        for bind in binds:
            private = bind.private_ftp
            if bind.tcp_redirect:
                if private is not None:
                    raise SnapshotError(
                        f"Bind allocated as both TCP redirect and private FTP server: {bind.id}"
                    )
                continue
            if bind.net_protocol is not NetProtocol.TCP:
                raise SnapshotError(
                    f"vsftpd may only be configured for TCP service: net_bind {bind.id} "
                    f"uses {bind.net_protocol}"
                )
            filename = vhost_filename(bind)
            if filename in filenames:
                raise SnapshotError(f"Filename already used: {filename}")
            filenames.add(filename)

            anonymous = private is None or private.allow_anonymous
            if private is not None:
                banner_host = private.hostname
            elif bind.is_unspecified:
                banner_host = host.hostname
            else:
                banner_host = bind.ip_address
            rebuild_pass.commit(
                ManagedArtifact(
                    path=vhosts / filename,
                    content=render_vsftpd_conf(
                        banner_host=banner_host,
                        anonymous=anonymous,
                        private=private,
                    ),
                    uid=uid,
                    gid=gid,
                    mode=CONF_MODE,
                )
            )
        rebuild_pass.trim(vhosts, filenames, owned=True)
