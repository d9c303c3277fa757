"""Default gateway extraction from routing table output."""

import re
from typing import Optional

from .base import BaseParser, ParseResult


class RouteParser(BaseParser):
    """Parser for default-route output of `ip route`, `route -n get` and `netstat -rn`."""

    source_type: str = "route"

    def parse(self, data: str, **kwargs) -> ParseResult:
        result = ParseResult(success=True, source_type=self.source_type)

        if not data or not data.strip():
            result.errors.append("Empty input data")
            result.success = False
            return result

        result.gateway = self._find_gateway(data)
        if result.gateway is None:
            result.errors.append("No default gateway found")
            result.success = False
        return result

    def _find_gateway(self, data: str) -> Optional[str]:
        for line in data.strip().split("\n"):
            line = line.strip()

            # Linux: "default via 192.168.1.1 dev eth0 proto dhcp metric 100"
            match = re.match(r"default\s+via\s+([\d.]+)", line)
            if match:
                return match.group(1)

            # macOS `route -n get default`: "gateway: 192.168.1.1"
            match = re.match(r"gateway:\s+([\d.]+)", line)
            if match:
                return match.group(1)

            # netstat -rn (BSD): "default            192.168.1.1        UGScg   en0"
            # netstat -rn (Windows): "0.0.0.0   0.0.0.0   192.168.1.1   192.168.1.100   25"
            parts = line.split()
            if len(parts) >= 2 and parts[0] == "default" and re.match(r"^[\d.]+$", parts[1]):
                return parts[1]
            if len(parts) >= 3 and parts[0] == "0.0.0.0" and parts[1] == "0.0.0.0":
                if re.match(r"^[\d.]+$", parts[2]):
                    return parts[2]

        return None
