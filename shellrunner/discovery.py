from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class HttpDiscovery:
    """
    Address of the HTTP file server a hosting system may run next to the
    scripts. Empty fields mean "not running"; they are not exported.
    """

    addr: str = ""
    ip: str = ""
    port: str = ""

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> "HttpDiscovery":
        env = os.environ if environ is None else environ
        return cls(
            addr=env.get("PACKER_HTTP_ADDR", ""),
            ip=env.get("PACKER_HTTP_IP", ""),
            port=env.get("PACKER_HTTP_PORT", ""),
        )
