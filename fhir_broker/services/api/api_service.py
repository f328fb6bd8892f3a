import logging
import time
from typing import Dict, Any
from requests import request, Response
from requests.exceptions import Timeout, ConnectionError
from yarl import URL

from fhir_broker.services.api.authenticators.authenticator import Authenticator

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class HttpService:
    """
    Base class for making HTTP requests with retry logic. With retries=1 a request is
    attempted exactly once.
    """

    def __init__(
        self,
        base_url: str,
        timeout: int,
        retries: int = 1,
        backoff: float = 0.1,
        authenticator: Authenticator | None = None,
        content_type: str = "application/json",
    ) -> None:
        self.base_url = base_url
        self.authenticator = authenticator
        self.content_type = content_type
        self.__timeout = timeout
        self.__retries = max(1, retries)
        self.__backoff = backoff

    def do_request(
        self,
        method: str,
        sub_route: str | None = None,
        json: Dict[str, Any] | None = None,
        params: Dict[str, Any] | None = None,
        data: Dict[str, Any] | None = None,
    ) -> Response:
        """
        Perform an HTTP request. `data` is sent form encoded, `json` as a JSON body.
        """
        headers = self.make_headers(form=data is not None)
        url = self.make_target_url(sub_route, params)

        for attempt in range(self.__retries):
            try:
                logger.info(f"Making HTTP {method} request to {url}")
                return request(
                    method=method,
                    url=str(url),
                    headers=headers,
                    timeout=self.__timeout,
                    json=json,
                    data=data,
                    auth=self.authenticator.get_auth() if self.authenticator else None,
                )
            except (
                ConnectionError,
                Timeout,
            ):
                logger.warning(f"Failed to make request to {url} on attempt {attempt}")

                if attempt < self.__retries - 1:
                    logger.info(f"Retrying in {self.__backoff * (2**attempt)} seconds")
                    time.sleep(self.__backoff * (2**attempt))

        logger.error(f"Failed to make request to {url} after {self.__retries} attempts")
        raise ConnectionError(f"Failed to make request to {url} after {self.__retries} attempt(s)")

    def make_headers(self, form: bool = False) -> Dict[str, Any]:
        headers = {"Content-Type": FORM_CONTENT_TYPE if form else self.content_type}
        if self.authenticator:
            header = self.authenticator.get_authentication_header()
            if header:
                headers["Authorization"] = header

        return headers

    def make_target_url(
        self, sub_route: str | None = None, params: Dict[str, Any] | None = None
    ) -> URL:
        url = self.base_url
        if sub_route:
            url = f"{url}/{sub_route}"

        target = URL(url)
        if params:
            return target.with_query(params)

        return target
