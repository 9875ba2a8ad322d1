from fastapi import APIRouter, Request, status
from sqlalchemy.exc import SQLAlchemyError

from api.config.logging import get_logger, mask_email
from api.config.settings import Settings, SettingsDep
from api.infra.database import Database, DatabaseDep
from api.v1.contacts.schemas import ContactRequest, ContactResponse
from api.v1.contacts.service import ContactService
from api.v1.core.exceptions import create_success_response
from api.v1.infra.email_queue.service import EmailQueueService
from api.v1.infra.email_queue.store import SqlAlchemyJobStore

router = APIRouter()
logger = get_logger(__name__)


@router.post("/contact", response_model=dict, status_code=status.HTTP_201_CREATED)
async def submit_contact(
    payload: ContactRequest,
    request: Request,
    settings: Settings = SettingsDep,
    database: Database = DatabaseDep,
):
    """
    Store a contact form message and queue its emails.

    The message is saved first. If the jobs cannot be enqueued the
    submission still succeeds and the failure is only logged.
    """
    contacts = ContactService(database.SessionLocal)
    contact = await contacts.create(payload.name, payload.email, payload.message)

    queue = EmailQueueService(settings, SqlAlchemyJobStore(database.SessionLocal))
    job_ids: list[str] = []
    try:
        job_ids = await queue.enqueue_for_contact(contact.id)
    except SQLAlchemyError:
        logger.exception(
            "Failed to enqueue contact emails",
            contact_id=contact.id,
            email=mask_email(contact.email),
        )

    logger.info(
        "Contact message received",
        contact_id=contact.id,
        email=mask_email(contact.email),
        job_count=len(job_ids),
    )

    response = ContactResponse(id=contact.id, email_job_ids=job_ids)
    return create_success_response(
        data=response.model_dump(),
        message="Message received",
        request_id=getattr(request.state, "request_id", None),
    )
