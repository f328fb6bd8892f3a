from typing import Any
from fhir_broker.services.api.authenticators.authenticator import Authenticator


class BearerTokenAuthenticator(Authenticator):
    """
    Sends an access token obtained from the broker as a bearer token.
    """
    def __init__(self, access_token: str) -> None:
        self.__access_token = access_token

    def get_authentication_header(self) -> str:
        return f"Bearer {self.__access_token}"

    def get_auth(self) -> Any:
        return None
