from abc import ABC, abstractmethod
from typing import Any


class Authenticator(ABC):
    """
    Abstract base class for authentication providers used by HttpService.
    """

    @abstractmethod
    def get_authentication_header(self) -> str:
        """
        Returns the value for the HTTP `Authorization` header, e.g. ``"Bearer <token>"``.
        An empty string means no header is sent.
        """
        ...

    @abstractmethod
    def get_auth(self) -> Any:
        """
        Returns authentication data in the format expected by the ``auth`` parameter of
        ``requests``, or None.
        """
        ...
