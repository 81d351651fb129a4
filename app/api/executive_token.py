from datetime import datetime, timedelta, timezone
from typing import List, Optional
from fastapi import APIRouter, Depends, Response, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.bearer import bearer_executive
from app.src.constants import MAX_EXECUTIVE_TOKENS, MAX_TOKEN_VALIDITY
from app.src.db import Executive, ExecutiveToken, sessionMaker
from app.src import argon2, exceptions, validators, getters
from app.src.enums import AccountStatus
from app.src.loggers import logEvent
from app.src.functions import fuseExceptionResponses
from app.src.urls import URL_EXECUTIVE_TOKEN

route_executive = APIRouter()


## Output Schema
class MaskedExecutiveTokenSchema(BaseModel):
    id: int
    executive_id: int
    expires_in: int
    expires_at: datetime
    client_details: Optional[str]
    updated_on: Optional[datetime]
    created_on: datetime


class ExecutiveTokenSchema(MaskedExecutiveTokenSchema):
    access_token: str
    token_type: Optional[str] = "bearer"


## Input Forms
class CreateForm(BaseModel):
    username: str = Field(Form(max_length=32))
    password: str = Field(Form(max_length=32))
    client_details: str | None = Field(Form(max_length=1024, default=None))


class DeleteForm(BaseModel):
    id: int | None = Field(Form(default=None))


## API endpoints [Executive]
@route_executive.post(
    URL_EXECUTIVE_TOKEN,
    tags=["Token"],
    response_model=ExecutiveTokenSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.InactiveAccount(), exceptions.InvalidCredentials()]
    ),
    description="""
    Issues a new access token for an executive after validating credentials.
    Limits active tokens using MAX_EXECUTIVE_TOKENS, the oldest token is dropped first.
    Sets expiration with expires_in=MAX_TOKEN_VALIDITY (in seconds).
    Executive tokens open the admin view of every listing.
    Logs the authentication event for audit tracking.
    """,
)
async def create_token(
    fParam: CreateForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        executive = (
            session.query(Executive)
            .filter(Executive.username == fParam.username)
            .first()
        )
        if executive is None:
            raise exceptions.InvalidCredentials()
        if not argon2.checkPassword(fParam.password, executive.password):
            raise exceptions.InvalidCredentials()
        if executive.status != AccountStatus.ACTIVE:
            raise exceptions.InactiveAccount()

        upgradedPassword = argon2.upgradedPassword(fParam.password, executive.password)
        if upgradedPassword is not None:
            executive.password = upgradedPassword

        # Remove excess tokens from DB
        tokens = (
            session.query(ExecutiveToken)
            .filter(ExecutiveToken.executive_id == executive.id)
            .order_by(ExecutiveToken.created_on.desc(), ExecutiveToken.id.desc())
            .all()
        )
        for token in tokens[MAX_EXECUTIVE_TOKENS - 1 :]:
            session.delete(token)
        session.flush()

        expires_at = datetime.now(timezone.utc) + timedelta(seconds=MAX_TOKEN_VALIDITY)
        token = ExecutiveToken(
            executive_id=executive.id,
            expires_in=MAX_TOKEN_VALIDITY,
            expires_at=expires_at,
            client_details=fParam.client_details,
        )
        session.add(token)
        session.commit()
        session.refresh(token)

        tokenData = jsonable_encoder(token)
        tokenLogData = tokenData.copy()
        tokenLogData.pop("access_token")
        logEvent(token, request_info, tokenLogData)
        return tokenData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.delete(
    URL_EXECUTIVE_TOKEN,
    tags=["Token"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Revokes an access token of the calling executive.
    If no ID is provided, it deletes the token used in the request (self-revocation).
    Tokens of other executives, and unknown IDs, are silently ignored.
    Logs the token revocation event for audit tracking.
    """,
)
async def delete_token(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_executive),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        if fParam.id is None:
            tokenToDelete = token
        else:
            tokenToDelete = (
                session.query(ExecutiveToken)
                .filter(ExecutiveToken.id == fParam.id)
                .filter(ExecutiveToken.executive_id == token.executive_id)
                .first()
            )
            if tokenToDelete is None:
                return Response(status_code=status.HTTP_204_NO_CONTENT)

        session.delete(tokenToDelete)
        session.commit()
        logEvent(
            token,
            request_info,
            jsonable_encoder(tokenToDelete, exclude={"access_token"}),
        )
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.get(
    URL_EXECUTIVE_TOKEN,
    tags=["Token"],
    response_model=List[MaskedExecutiveTokenSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Lists the masked tokens of the calling executive, newest first.
    """,
)
async def fetch_tokens(bearer=Depends(bearer_executive)):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        return (
            session.query(ExecutiveToken)
            .filter(ExecutiveToken.executive_id == token.executive_id)
            .order_by(ExecutiveToken.id.desc())
            .all()
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
