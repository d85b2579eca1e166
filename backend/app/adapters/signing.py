"""AWS Signature V4 request signing for httpx clients."""

import hashlib
from collections.abc import Generator
from typing import Any

import boto3
import httpx
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest

from backend.app.errors import ProvisioningError


class AwsSigV4Auth(httpx.Auth):
    """httpx auth flow that signs each request with SigV4.

    OpenSearch Serverless requires the payload hash header on every request,
    including bodiless ones.
    """

    requires_request_body = True

    def __init__(self, credentials: Any, region: str, service: str = "aoss") -> None:
        self._credentials = credentials
        self._region = region
        self._service = service

    @classmethod
    def from_default_session(cls, region: str, service: str = "aoss") -> "AwsSigV4Auth":
        """Use credentials from the default boto3 provider chain."""
        credentials = boto3.Session().get_credentials()
        if credentials is None:
            raise ProvisioningError("No AWS credentials available for request signing")
        return cls(credentials, region, service)

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        body = request.content
        headers = {
            "host": request.url.netloc.decode("ascii"),
            "x-amz-content-sha256": hashlib.sha256(body).hexdigest(),
        }
        if "content-type" in request.headers:
            headers["content-type"] = request.headers["content-type"]

        aws_request = AWSRequest(
            method=request.method,
            url=str(request.url),
            data=body,
            headers=headers,
        )
        SigV4Auth(self._credentials, self._service, self._region).add_auth(aws_request)

        for name, value in aws_request.headers.items():
            request.headers[name] = value
        yield request
