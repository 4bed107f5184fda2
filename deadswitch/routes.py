import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Request, Response, status

from deadswitch import schemas
from deadswitch.exceptions import InvalidUserError
from deadswitch.services.message_service import MessageService

logger = logging.getLogger("routes")
router = APIRouter(tags=["Core"])


def get_message_service(request: Request) -> MessageService:
    return request.app.state.message_service


async def get_current_user_email(x_user_email: Optional[str] = Header(None)) -> str:
    """Identity of the caller; a JWT-verifying dependency can replace this one."""
    email = (x_user_email or "").strip().lower()
    if not email:
        raise InvalidUserError("Missing user identity")
    return email


@router.put(
    "/confirmation/{token}",
    response_model=schemas.ConfirmationOut,
    responses={204: {"description": "Unknown confirmation token"}},
)
async def confirm_check_in(token: str, service: MessageService = Depends(get_message_service)):
    next_check_in = await service.check_in(token)
    if next_check_in is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return schemas.ConfirmationOut(next_check_in=next_check_in)


@router.post("/user", status_code=status.HTTP_204_NO_CONTENT)
async def sign_in(
    email: str = Depends(get_current_user_email),
    service: MessageService = Depends(get_message_service),
):
    await service.sign_in(email)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/messages", response_model=List[schemas.MessageOut])
async def list_messages(
    email: str = Depends(get_current_user_email),
    service: MessageService = Depends(get_message_service),
):
    messages = await service.list_messages(email)
    return [schemas.MessageOut.from_message(m) for m in messages]


@router.get("/messages/{message_id}", response_model=schemas.MessageOut)
async def get_message(
    message_id: int,
    email: str = Depends(get_current_user_email),
    service: MessageService = Depends(get_message_service),
):
    return schemas.MessageOut.from_message(await service.get_message(email, message_id))


@router.post("/messages", response_model=schemas.MessageOut, status_code=status.HTTP_201_CREATED)
async def create_message(
    payload: schemas.MessageCreate,
    email: str = Depends(get_current_user_email),
    service: MessageService = Depends(get_message_service),
):
    message = await service.create_message(
        email,
        recipients=payload.recipients,
        subject=payload.subject,
        content=payload.content,
        interval_amount=payload.interval_amount,
        interval_unit=payload.interval_unit.value,
        active=payload.active,
    )
    return schemas.MessageOut.from_message(message)


@router.put("/messages/{message_id}", response_model=schemas.MessageOut)
async def update_message(
    message_id: int,
    payload: schemas.MessageUpdate,
    email: str = Depends(get_current_user_email),
    service: MessageService = Depends(get_message_service),
):
    message = await service.update_message(
        email,
        message_id,
        recipients=payload.recipients,
        subject=payload.subject,
        content=payload.content,
        interval_amount=payload.interval_amount,
        interval_unit=payload.interval_unit.value if payload.interval_unit else None,
        active=payload.active,
    )
    return schemas.MessageOut.from_message(message)


@router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: int,
    email: str = Depends(get_current_user_email),
    service: MessageService = Depends(get_message_service),
):
    await service.delete_message(email, message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
