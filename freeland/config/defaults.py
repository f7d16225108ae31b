"""Project-wide default values for Freeland.

These constants describe the authority the client talks to and the local
files the provisioning pipeline owns. Keeping them in one place makes it
easy to audit and adjust defaults without touching call sites.
"""

# 授权服务器（authority）
DEFAULT_AUTHORITY_HOST = "185.92.221.13"
DEFAULT_SSH_PORT = 26
DEFAULT_HTTP_SCHEME = "http"
NODE_QUERY_PATH = "/node"
NODE_QUERY_PARAM = "uname"

# 网络超时（秒）
DEFAULT_SSH_TIMEOUT = 15
DEFAULT_HTTP_TIMEOUT = 10

# 本地文件
DEFAULT_IDENTITY_FILE = ".freeland.conf"
DEFAULT_PROFILE_FILE = ".config.json"
IDENTITY_FILE_MODE = 0o600
PROFILE_FILE_MODE = 0o644

# V2Ray 引擎
DEFAULT_V2RAY_EXECUTABLE = "v2ray"
ENGINE_START_GRACE_SECONDS = 1.0
ENGINE_STOP_TIMEOUT_SECONDS = 5.0
