"""Schema provisioning: drop target schemas and import their metadata.

The metadata import is delegated to a job-control service described by the
``MetadataImportJob`` protocol. ``DataPumpJob`` is the Oracle implementation;
tests and other databases can supply their own.
"""

from typing import Any, Callable, Iterable, Optional, Protocol

from subsetflow.connectors.oracle.utils import quote_identifier
from subsetflow.core.models import RunSpec
from subsetflow.exceptions import SchemaProvisionError, StatementError
from subsetflow.logging import get_logger

logger = get_logger(__name__)

JOB_COMPLETED = "COMPLETED"


class MetadataImportJob(Protocol):
    """Job-control handle for one metadata-only import."""

    def set_metadata_filter(self, name: str, value: str) -> None:
        ...

    def set_data_filter(self, name: str, value: Any) -> None:
        ...

    def set_parameter(self, name: str, value: Any) -> None:
        ...

    def remap_tablespace(self, source: str, target: str) -> None:
        ...

    def start(self) -> None:
        ...

    def wait_for_completion(
        self, timeout: Optional[float] = None, poll_interval: float = 30.0
    ) -> str:
        ...

    def detach(self) -> None:
        ...


# open_job(session, remote_link, version) -> MetadataImportJob
JobFactory = Callable[..., MetadataImportJob]


def _default_job_factory() -> JobFactory:
    from subsetflow.connectors.oracle.datapump import DataPumpJob

    return DataPumpJob.open


class SchemaProvisioner:
    """Recreates the target schemas from the source's metadata."""

    def __init__(self, job_factory: Optional[JobFactory] = None):
        self.job_factory = job_factory or _default_job_factory()

    def provision(self, session: Any, spec: RunSpec) -> None:
        if spec.drop_schemas:
            self.drop_schemas(session, spec.schemas)
        self.import_metadata(session, spec)

    def drop_schemas(self, session: Any, schemas: Iterable[str]) -> None:
        """Drop each schema and everything it owns."""
        for schema in schemas:
            logger.info(f"Dropping target schema {schema}")
            try:
                session.execute(f"drop user {quote_identifier(schema)} cascade")
            except StatementError as e:
                raise SchemaProvisionError(
                    f"Could not drop schema {schema}", schema=schema, original_error=e
                ) from e

    def import_metadata(self, session: Any, spec: RunSpec) -> None:
        """Run a metadata-only import of ``spec.schemas`` from the source.

        Raises:
            SchemaProvisionError: if the job cannot be configured or does not
                finish in the ``COMPLETED`` state
        """
        options = spec.job_options
        try:
            job = self.job_factory(session, spec.source.name, options.version)
        except StatementError as e:
            raise SchemaProvisionError(
                "Could not open the metadata import job", original_error=e
            ) from e

        try:
            job.set_metadata_filter(
                "SCHEMA_LIST", ",".join(f"'{schema}'" for schema in spec.schemas)
            )
            for path in options.exclude_paths:
                job.set_metadata_filter("EXCLUDE_PATH_LIST", f"'{path}'")
            if options.create_users:
                job.set_parameter("USER_METADATA", 1)
            for remap in spec.tablespace_remaps:
                job.remap_tablespace(remap.source, remap.target)
            # Rows are copied later, table by table.
            job.set_data_filter("INCLUDE_ROWS", 0)

            logger.info(f"Importing metadata for {', '.join(spec.schemas)}")
            job.start()
            state = job.wait_for_completion(
                timeout=options.wait_timeout, poll_interval=options.poll_interval
            )
        except StatementError as e:
            raise SchemaProvisionError(
                "Metadata import job failed", original_error=e
            ) from e
        finally:
            try:
                job.detach()
            except StatementError as e:
                logger.warning(f"Could not detach from the metadata import job: {e.message}")

        if state != JOB_COMPLETED:
            logger.error(f"Metadata import finished with status '{state}'")
            raise SchemaProvisionError(
                f"Metadata import finished with status '{state}'", job_state=state
            )
        logger.info("Metadata import completed")
