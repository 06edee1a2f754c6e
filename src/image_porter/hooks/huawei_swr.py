"""Makes repositories pushed to Huawei Cloud SWR publicly pullable."""

from __future__ import annotations

import logging
from typing import Optional

from huaweicloudsdkcore.auth.credentials import BasicCredentials
from huaweicloudsdkcore.exceptions.exceptions import SdkException
from huaweicloudsdkswr.v2 import SwrClient, UpdateRepoRequest, UpdateRepoRequestBody
from huaweicloudsdkswr.v2.region.swr_region import SwrRegion

from ..config import HuaweiSWRSettings
from ..errors import RegistryError
from ..logging_utils import mask_sensitive
from .base import PostPublishHook, host_matches

logger = logging.getLogger(__name__)

SWR_HOST_PATTERNS = ("swr.", "myhuaweicloud.com")


class HuaweiSWRVisibilityHook(PostPublishHook):
    name = "huawei-swr-visibility"
    description = "Sets Huawei SWR repositories to public after push"

    def __init__(self, settings: Optional[HuaweiSWRSettings] = None):
        self.settings = settings or HuaweiSWRSettings()
        self._client: Optional[SwrClient] = None

    def matches(self, host: str) -> bool:
        return host_matches(host, SWR_HOST_PATTERNS)

    def is_configured(self) -> bool:
        s = self.settings
        return bool(s.access_key and s.secret_key and s.region)

    def client(self) -> SwrClient:
        if self._client is None:
            credentials = BasicCredentials(self.settings.access_key, self.settings.secret_key)
            try:
                region = SwrRegion.value_of(self.settings.region)
            except KeyError as e:
                raise RegistryError(
                    f"unknown Huawei Cloud region {self.settings.region}", cause=e
                ) from e
            self._client = (
                SwrClient.new_builder()
                .with_credentials(credentials)
                .with_region(region)
                .build()
            )
            logger.debug(
                "Created SWR client for region %s with access key %s",
                self.settings.region,
                mask_sensitive(self.settings.access_key),
            )
        return self._client

    def apply(self, namespace: str, repository: str) -> None:
        if not namespace or not repository:
            raise RegistryError(
                "SWR repositories need a namespace and a repository name",
                context={"namespace": namespace, "repository": repository},
            )

        request = UpdateRepoRequest(
            namespace=namespace,
            repository=repository,
            body=UpdateRepoRequestBody(is_public=True),
        )
        try:
            self.client().update_repo(request)
        except SdkException as e:
            raise RegistryError(
                "failed to make SWR repository public",
                cause=e,
                context={"namespace": namespace, "repository": repository},
            ) from e

        logger.info("SWR repository %s/%s is now public", namespace, repository)
