"""Menu import handler."""

from typing import Protocol

from menuvo_worker.core.registry import HandlerRegistry
from menuvo_worker.handlers.payloads import MENU_IMPORT_REQUESTED, MenuImportJob


class MenuImportService(Protocol):
    """Extracts menu data from an uploaded file and stores it on the job."""

    async def process_job(self, job_id: str, file_key: str, file_type: str) -> None: ...


def register(registry: HandlerRegistry, service: MenuImportService) -> None:
    async def process(job_id: str, job: MenuImportJob) -> None:
        await service.process_job(job.job_id, job.file_key, job.file_type)

    registry.register(MENU_IMPORT_REQUESTED, process, MenuImportJob)
