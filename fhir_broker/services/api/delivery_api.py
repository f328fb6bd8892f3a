import logging
from typing import Any, Dict

from requests import Response

from fhir_broker.services.api.api_service import HttpService

logger = logging.getLogger(__name__)


class DeliveryApi:
    """
    Posts notification payloads to subscriber endpoints. Exactly one attempt is made per
    call; there is no retry or backoff.
    """

    def __init__(self, timeout: int, content_type: str = "application/fhir+json") -> None:
        self.__timeout = timeout
        self.__content_type = content_type

    def deliver(self, endpoint: str, payload: Dict[str, Any]) -> Response:
        service = HttpService(
            base_url=endpoint,
            timeout=self.__timeout,
            retries=1,
            content_type=self.__content_type,
        )
        return service.do_request("POST", json=payload)
