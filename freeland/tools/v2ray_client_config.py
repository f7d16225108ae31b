"""V2Ray 客户端配置合成。V2Ray client profile synthesis.

The baseline template is an opaque V2Ray document. Synthesis touches exactly
two places in it: the upstream server ``address`` of the tunnel outbound and
the ``id`` of every user under that server. Everything else is written back
as loaded.
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, Mapping, Union

from ..config.defaults import PROFILE_FILE_MODE
from ..exceptions import SerializationError, TemplateShapeError
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

TUNNEL_PROTOCOLS = ("vmess", "vless")

BASELINE_TEMPLATE = """
{
  "inbound": {
    "listen": "127.0.0.1",
    "port": 1080,
    "protocol": "socks",
    "settings": {
      "auth": "noauth",
      "udp": false
    }
  },
  "outbound": {
    "protocol": "vmess",
    "settings": {
      "vnext": [
        {
          "address": "freedomland.tk",
          "port": 443,
          "users": [
            {
              "id": "b831381d-6324-4d53-ad4f-8cda48b30811",
              "alterId": 64
            }
          ]
        }
      ]
    },
    "streamSettings": {
      "network": "ws",
      "security": "tls",
      "tlsSettings": {
        "serverName": "freedomland.tk"
      },
      "wsSettings": {
        "path": "/ray"
      }
    },
    "mux": {"enabled": true}
  },
  "outboundDetour": [
    {"protocol": "freedom", "settings": {}, "tag": "direct"},
    {"protocol": "blackhole", "settings": {}, "tag": "adblock"}
  ],
  "routing": {
    "strategy": "rules",
    "settings": {
      "domainStrategy": "IPIfNonMatch",
      "rules": [
        {
          "ip": [
            "0.0.0.0/8",
            "10.0.0.0/8",
            "100.64.0.0/10",
            "127.0.0.0/8",
            "169.254.0.0/16",
            "172.16.0.0/12",
            "192.0.0.0/24",
            "192.0.2.0/24",
            "192.168.0.0/16",
            "198.18.0.0/15",
            "198.51.100.0/24",
            "203.0.113.0/24",
            "::1/128",
            "fc00::/7",
            "fe80::/10"
          ],
          "type": "field",
          "outboundTag": "direct"
        },
        {
          "domain": ["tanx.com", "googeadsserving.cn"],
          "type": "field",
          "outboundTag": "adblock"
        },
        {
          "domain": ["amazon.com", "microsoft.com", "jd.com", "youku.com", "baidu.com"],
          "type": "field",
          "outboundTag": "direct"
        },
        {"type": "chinasites", "outboundTag": "direct"},
        {"type": "chinaip", "outboundTag": "direct"}
      ]
    }
  }
}
"""

Template = Union[str, bytes, Mapping[str, Any]]


def _expect(value: Any, kind: type, where: str) -> Any:
    if not isinstance(value, kind):
        raise TemplateShapeError(
            f"模板结构不符合预期：{where} 应为 {kind.__name__}，实际为 {type(value).__name__}"
        )
    return value


def _tunnel_outbound(document: dict[str, Any]) -> dict[str, Any]:
    """Return the single tunnel-client outbound block of ``document``."""

    if "outbound" in document:
        return _expect(document["outbound"], dict, "outbound")

    outbounds = _expect(document.get("outbounds"), list, "outbounds")
    tunnels = [
        entry
        for entry in outbounds
        if isinstance(entry, dict) and entry.get("protocol") in TUNNEL_PROTOCOLS
    ]
    if len(tunnels) != 1:
        raise TemplateShapeError(f"模板中应恰好有一个 vmess/vless 出站，实际为 {len(tunnels)} 个")
    return tunnels[0]


class ConnectionProfile:
    """Typed view over a V2Ray document.

    The constructor validates the path down to the upstream server entry and
    its users; mutation goes through :attr:`server_address` and
    :meth:`assign_user_ids` only.
    """

    def __init__(self, document: dict[str, Any]):
        self._document = _expect(document, dict, "根节点")

        outbound = _tunnel_outbound(self._document)
        settings = _expect(outbound.get("settings"), dict, "outbound.settings")
        vnext = _expect(settings.get("vnext"), list, "outbound.settings.vnext")
        if len(vnext) != 1:
            raise TemplateShapeError(f"vnext 应恰好包含一个服务器条目，实际为 {len(vnext)} 个")
        self._server: dict[str, Any] = _expect(vnext[0], dict, "vnext[0]")

        users = _expect(self._server.get("users"), list, "vnext[0].users")
        if not users:
            raise TemplateShapeError("vnext[0].users 不能为空")
        self._users: list[dict[str, Any]] = [
            _expect(user, dict, f"vnext[0].users[{index}]") for index, user in enumerate(users)
        ]

    @classmethod
    def from_template(cls, template: Template) -> "ConnectionProfile":
        """Parse ``template`` into a profile, leaving the input untouched."""

        if isinstance(template, (str, bytes)):
            try:
                document = json.loads(template)
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                raise TemplateShapeError(f"模板不是有效的 JSON: {exc}") from exc
        else:
            document = copy.deepcopy(dict(template))
        return cls(document)

    @property
    def server_address(self) -> Any:
        return self._server.get("address")

    @server_address.setter
    def server_address(self, address: str) -> None:
        self._server["address"] = address

    @property
    def user_ids(self) -> list[Any]:
        return [user.get("id") for user in self._users]

    def assign_user_ids(self, secret: str) -> None:
        """Give every user entry the same ``secret``."""

        for user in self._users:
            user["id"] = secret

    def to_document(self) -> dict[str, Any]:
        return self._document

    def to_json(self, indent: int = 2) -> str:
        try:
            return json.dumps(self._document, indent=indent, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"无法序列化配置: {exc}") from exc


def load_template(path: str | os.PathLike[str]) -> str:
    """Read a template file as text."""

    template_path = Path(path).expanduser()
    try:
        return template_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise TemplateShapeError(f"无法读取模板 {template_path}: {exc}") from exc


def render_profile(template: Template, address: str, secret: str) -> dict[str, Any]:
    """Return the synthesized document without writing it anywhere."""

    profile = ConnectionProfile.from_template(template)
    profile.server_address = address
    profile.assign_user_ids(secret)
    return profile.to_document()


def save_v2ray_config(config: Mapping[str, Any], filepath: str | os.PathLike[str]) -> Path:
    """保存 V2Ray 配置到文件。"""

    target = Path(filepath)
    try:
        payload = json.dumps(config, indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"无法序列化配置: {exc}") from exc

    try:
        with open(target, "w", encoding="utf-8") as f:
            f.write(payload)
        os.chmod(target, PROFILE_FILE_MODE)
    except OSError as exc:
        raise SerializationError(f"无法写入配置文件 {target}: {exc}") from exc
    return target


def synthesize(
    template: Template,
    address: str,
    secret: str,
    path: str | os.PathLike[str],
) -> Path:
    """Inject ``address`` and ``secret`` into ``template`` and persist it at ``path``."""

    document = render_profile(template, address, secret)
    target = save_v2ray_config(document, path)
    LOGGER.info("v2ray client profile written: path=%s, address=%s", target, address)
    return target


def remove_profile(path: str | os.PathLike[str]) -> bool:
    """Delete the profile at ``path``; a missing file is not an error."""

    target = Path(path)
    try:
        target.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        LOGGER.warning("无法删除配置文件 %s: %s", target, exc)
        return False
    LOGGER.debug("Removed profile %s", target)
    return True


__all__ = [
    "BASELINE_TEMPLATE",
    "ConnectionProfile",
    "load_template",
    "remove_profile",
    "render_profile",
    "save_v2ray_config",
    "synthesize",
]
