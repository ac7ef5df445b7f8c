from .http.model import (
	HTTPRequest,
	HTTPResponse,
	HTTPRequestError,
)  # NOQA: F401
from .config import ServerConfig, ConfigurationError  # NOQA: F401
from .handler import Handler, chain  # NOQA: F401
from .resolver import PathResolver  # NOQA: F401
from .services.files import FileService  # NOQA: F401
from .features.gzip import GZipHandler  # NOQA: F401
from .server import AIOSocketServer, BindError, run  # NOQA: F401

__version__: str = "1.0.0"

# EOF
