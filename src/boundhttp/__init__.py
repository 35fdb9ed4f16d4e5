"""boundhttp - retrying HTTP requests with deadlines and size limits."""

from .exceptions import (
    HttpClientError,
    HttpSizeLimitError,
    HttpTimeoutError,
    HttpTransportError,
    HttpUsageError,
)
from .http_client import (
    HttpClient,
    HttpClientSettings,
    execute_get_request,
    execute_get_request_and_return_response,
    execute_post_request,
    execute_post_request_and_return_response,
    new_request,
)
from .multimap import NamedMultiValueMap
from .proxy import ProxySettings, resolve_proxy
from .request import BinaryEntity, FormParameters, HttpRequest, NoBody
from .response import HttpMethod, HttpResponse
from .retry import (
    RetryStrategy,
    RetryStrategyType,
    accept_codes,
    accept_no_failure,
    reject_server_errors,
)

__version__ = "0.1.0"
