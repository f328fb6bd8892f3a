from typing import Any
from fhir_broker.services.api.authenticators.authenticator import Authenticator


class NullAuthenticator(Authenticator):
    """
    Null Authenticator that performs no authentication. Used for calls that need no
    credentials, like the token exchange itself.
    """
    def get_authentication_header(self) -> str:
        return ""

    def get_auth(self) -> Any:
        return None
