from typing import Any, Optional

from azure.core.exceptions import AzureError, ResourceExistsError
from azure.storage.blob import BlobServiceClient, ContentSettings

from src.shared.config import AppConfig
from src.shared.logging_utils import info as log_info
from src.specs.common.errors import ArchiveError, ConfigurationError
from src.specs.documents.contact_record_spec import ContactRecord


class ContactArchive:
    """Write-once store of private contact records, one JSON blob per correlation id."""

    def __init__(self, container_name: str, service: Any):
        self.container_name = container_name
        self._service = service

    @classmethod
    def from_config(cls, config: AppConfig, service: Optional[Any] = None) -> "ContactArchive":
        if service is None:
            conn = config.contact_storage_connection.get_secret_value()
            if not conn:
                raise ConfigurationError("CONTACT_STORAGE_CONNECTION is required for contact storage")
            service = BlobServiceClient.from_connection_string(conn)
        return cls(config.contact_container_name, service)

    def store(self, record: ContactRecord) -> str:
        """Upload ``record`` and return the blob name.

        Creates the container if missing. Existing blobs are never overwritten.
        """
        container_client = self._service.get_container_client(self.container_name)
        try:
            container_client.create_container()
        except ResourceExistsError:
            pass
        except AzureError as exc:
            raise ArchiveError(f"Could not prepare container {self.container_name}") from exc

        body = record.model_dump_json(indent=2)
        blob = container_client.get_blob_client(record.blob_name)
        try:
            blob.upload_blob(
                body.encode("utf-8"),
                overwrite=False,
                content_settings=ContentSettings(content_type="application/json"),
            )
        except AzureError as exc:
            raise ArchiveError(f"Could not store contact record {record.correlationId}") from exc
        log_info(record.correlationId, "contacts:stored", container=self.container_name, blob=record.blob_name)
        return record.blob_name
