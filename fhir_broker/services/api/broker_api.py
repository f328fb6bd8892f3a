import logging
from typing import Any, Dict

from fastapi import HTTPException
from pydantic import ValidationError
from requests import JSONDecodeError, Response

from fhir_broker.models.auth.dto import Rejection, TokenResponse
from fhir_broker.models.fanout.dto import ClinicalEvent
from fhir_broker.services.api.api_service import HttpService
from fhir_broker.services.api.authenticators.authenticator import Authenticator
from fhir_broker.services.api.authenticators.bearer_authenticator import BearerTokenAuthenticator
from fhir_broker.services.api.authenticators.null_authenticator import NullAuthenticator

ERR_MSG_FORMAT = "Broker API error: %s"
HTTP_ERR_MSG = "An error occurred while calling the broker."
FHIR_JSON = "application/fhir+json"
CLIENT_CREDENTIALS = "client_credentials"
JWT_BEARER_ASSERTION = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"

logger = logging.getLogger(__name__)


class BrokerApi(HttpService):
    """
    Server to server calls into the broker, used by the source system and the client.
    """

    def __init__(
        self,
        base_url: str,
        timeout: int,
        retries: int = 1,
        backoff: float = 0.1,
        auth: Authenticator | None = None,
    ) -> None:
        super().__init__(
            base_url=base_url,
            timeout=timeout,
            retries=retries,
            backoff=backoff,
            authenticator=auth or NullAuthenticator(),
        )
        self.__timeout = timeout
        self.__retries = retries
        self.__backoff = backoff

    def authorized(self, access_token: str) -> "BrokerApi":
        """
        Returns a copy of this api that sends the given bearer token.
        """
        return BrokerApi(
            base_url=self.base_url,
            timeout=self.__timeout,
            retries=self.__retries,
            backoff=self.__backoff,
            auth=BearerTokenAuthenticator(access_token),
        )

    def register_patient(self, source_id: str, name: str, birth_date: str) -> str:
        response = self.do_request(
            "POST",
            sub_route="register-patient",
            json={"sourceId": source_id, "name": name, "birthDate": birth_date},
        )
        data = self.__parse(response)
        return str(data["brokerId"])

    def emit_event(self, event: ClinicalEvent) -> Dict[str, Any]:
        response = self.do_request(
            "POST",
            sub_route="internal/event",
            json=event.model_dump(by_alias=True, exclude_none=True),
        )
        return self.__parse(response)

    def exchange_token(self, client_assertion: str) -> TokenResponse | Rejection:
        """
        SMART backend services token request carrying the client assertion. A 400 from
        the broker is a rejection, not an error.
        """
        response = self.do_request(
            "POST",
            sub_route="auth/token",
            data={
                "grant_type": CLIENT_CREDENTIALS,
                "client_assertion_type": JWT_BEARER_ASSERTION,
                "client_assertion": client_assertion,
            },
        )
        if response.status_code == 400:
            try:
                return Rejection.model_validate(response.json())
            except (JSONDecodeError, ValidationError):
                logger.error(ERR_MSG_FORMAT, response.text)
                raise HTTPException(status_code=502, detail=HTTP_ERR_MSG)

        data = self.__parse(response)
        try:
            return TokenResponse.model_validate(data)
        except ValidationError as e:
            logger.error(ERR_MSG_FORMAT, e)
            raise HTTPException(status_code=502, detail=HTTP_ERR_MSG)

    def create_subscription(self, patient: str, endpoint: str) -> Dict[str, Any]:
        self.content_type = FHIR_JSON
        response = self.do_request(
            "POST",
            sub_route="fhir/Subscription",
            json={
                "resourceType": "Subscription",
                "criteria": f"Encounter?patient=Patient/{patient}",
                "channel": {
                    "type": "rest-hook",
                    "endpoint": endpoint,
                    "payload": FHIR_JSON,
                },
            },
        )
        return self.__parse(response)

    @staticmethod
    def __parse(response: Response) -> Dict[str, Any]:
        if response.status_code >= 400:
            logger.error(ERR_MSG_FORMAT, f"{response.status_code} {response.text}")
            raise HTTPException(status_code=502, detail=HTTP_ERR_MSG)

        try:
            data = response.json()
        except JSONDecodeError:
            logger.error("Failed to decode JSON response: %s", response.text)
            raise HTTPException(status_code=502, detail=HTTP_ERR_MSG)

        if not isinstance(data, dict):
            raise HTTPException(status_code=502, detail=HTTP_ERR_MSG)

        return data
