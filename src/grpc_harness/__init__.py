from .barrier import CompletionBarrier
from .barrier import multi_done
from .call import CallCompleted
from .call import CallStatus
from .call import InitialMetadataReceived
from .call import PendingCall
from .call import StatusReceived
from .client import ClientOptions
from .client import ServiceClient
from .credentials import CallCredentials
from .credentials import ChannelCredentials
from .credentials import MetadataContext
from .credentials import MetadataGeneratorError
from .credentials import create_insecure
from .credentials import create_ssl
from .credentials import load_credential_file
from .metadata import Metadata
from .scenario import Scenario
from .scenario import ScenarioFailed
from .scenario import ScenarioTimeout
from .schema import load_package
from .server import InteropServer
from .server import get_server


__version__ = "0.1.0"

__all__ = [
    "CallCompleted",
    "CallCredentials",
    "CallStatus",
    "ChannelCredentials",
    "ClientOptions",
    "CompletionBarrier",
    "InitialMetadataReceived",
    "InteropServer",
    "Metadata",
    "MetadataContext",
    "MetadataGeneratorError",
    "PendingCall",
    "Scenario",
    "ScenarioFailed",
    "ScenarioTimeout",
    "ServiceClient",
    "StatusReceived",
    "create_insecure",
    "create_ssl",
    "get_server",
    "load_credential_file",
    "load_package",
    "multi_done",
]
