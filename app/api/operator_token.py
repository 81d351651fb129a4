from datetime import datetime, timedelta, timezone
from typing import List, Optional
from fastapi import APIRouter, Depends, Response, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.bearer import bearer_operator
from app.src.constants import MAX_OPERATOR_TOKENS, MAX_TOKEN_VALIDITY
from app.src.db import Company, Operator, OperatorToken, sessionMaker
from app.src import argon2, exceptions, validators, getters
from app.src.enums import AccountStatus, CompanyStatus
from app.src.loggers import logEvent
from app.src.functions import fuseExceptionResponses
from app.src.urls import URL_OPERATOR_TOKEN

route_operator = APIRouter()


## Output Schema
class MaskedOperatorTokenSchema(BaseModel):
    id: int
    operator_id: int
    company_id: int
    expires_in: int
    expires_at: datetime
    client_details: Optional[str]
    created_on: datetime
    updated_on: Optional[datetime]


class OperatorTokenSchema(MaskedOperatorTokenSchema):
    access_token: str
    token_type: Optional[str] = "bearer"


## Input Forms
class CreateForm(BaseModel):
    company_id: int = Field(Form())
    username: str = Field(Form(max_length=32))
    password: str = Field(Form(max_length=32))
    client_details: str | None = Field(Form(max_length=1024, default=None))


class DeleteForm(BaseModel):
    id: int | None = Field(Form(default=None))


## API endpoints [Operator]
@route_operator.post(
    URL_OPERATOR_TOKEN,
    tags=["Token"],
    response_model=OperatorTokenSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.InactiveAccount(), exceptions.InvalidCredentials()]
    ),
    description="""
    Issues a new access token for an operator of the given company.
    The operator account must be active and its company must not be suspended.
    Limits active tokens using MAX_OPERATOR_TOKENS, the oldest token is dropped first.
    Every request made with the token is scoped to the operator's company.
    Logs the authentication event for audit tracking.
    """,
)
async def create_token(
    fParam: CreateForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        operator = (
            session.query(Operator)
            .filter(Operator.username == fParam.username)
            .filter(Operator.company_id == fParam.company_id)
            .first()
        )
        if operator is None:
            raise exceptions.InvalidCredentials()
        if not argon2.checkPassword(fParam.password, operator.password):
            raise exceptions.InvalidCredentials()
        if operator.status != AccountStatus.ACTIVE:
            raise exceptions.InactiveAccount()
        company = session.query(Company).filter(Company.id == operator.company_id).first()
        if company.status == CompanyStatus.SUSPENDED:
            raise exceptions.InactiveAccount()

        upgradedPassword = argon2.upgradedPassword(fParam.password, operator.password)
        if upgradedPassword is not None:
            operator.password = upgradedPassword

        # Remove excess tokens from DB
        tokens = (
            session.query(OperatorToken)
            .filter(OperatorToken.operator_id == operator.id)
            .order_by(OperatorToken.created_on.desc(), OperatorToken.id.desc())
            .all()
        )
        for token in tokens[MAX_OPERATOR_TOKENS - 1 :]:
            session.delete(token)
        session.flush()

        expires_at = datetime.now(timezone.utc) + timedelta(seconds=MAX_TOKEN_VALIDITY)
        token = OperatorToken(
            operator_id=operator.id,
            company_id=operator.company_id,
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


@route_operator.delete(
    URL_OPERATOR_TOKEN,
    tags=["Token"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Revokes an access token of the calling operator.
    If no ID is provided, it deletes the token used in the request (self-revocation).
    Tokens of other operators, and unknown IDs, are silently ignored.
    Logs the token revocation event for audit tracking.
    """,
)
async def delete_token(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_operator),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        if fParam.id is None:
            tokenToDelete = token
        else:
            tokenToDelete = (
                session.query(OperatorToken)
                .filter(OperatorToken.id == fParam.id)
                .filter(OperatorToken.operator_id == token.operator_id)
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


@route_operator.get(
    URL_OPERATOR_TOKEN,
    tags=["Token"],
    response_model=List[MaskedOperatorTokenSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Lists the masked tokens of the calling operator, newest first.
    """,
)
async def fetch_tokens(bearer=Depends(bearer_operator)):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        return (
            session.query(OperatorToken)
            .filter(OperatorToken.operator_id == token.operator_id)
            .order_by(OperatorToken.id.desc())
            .all()
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
