"""
Request schemas, one per operation.

Routes call ``validate_payload`` and check the returned error before any
domain logic runs; nothing past this point sees an unvalidated body.
"""
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    model_validator,
)

from groupledger.utils.enums import SplitType
from groupledger.utils.money import to_money, to_percent

Money = Annotated[Decimal, BeforeValidator(to_money)]
Percent = Annotated[Decimal, BeforeValidator(to_percent)]

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class _Request(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


# ------------------ GROUPS ------------------

class CreateGroupRequest(_Request):
    name: str = Field(..., min_length=1, max_length=200)
    group_budget: Money = Field(..., ge=0, alias="groupBudget")
    description: Optional[str] = Field(default=None, max_length=1000)
    group_members: List[int] = Field(default_factory=list, alias="groupMembers")


class EditGroupRequest(_Request):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    group_budget: Optional[Money] = Field(default=None, ge=0, alias="groupBudget")
    description: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _has_changes(self):
        if self.name is None and self.group_budget is None and self.description is None:
            raise ValueError("nothing to update")
        return self


class AddMemberRequest(_Request):
    add_user_id: int = Field(..., alias="add_userId")


class RemoveMemberRequest(_Request):
    delete_user_id: int = Field(..., alias="delete_user_id")


class TargetMemberRequest(_Request):
    target_user_id: int = Field(
        ..., validation_alias=AliasChoices("targetUserId", "target_user_id")
    )


# ------------------ EXPENSES ------------------

class ShareRequest(_Request):
    username: str = Field(..., min_length=1)
    amount_owed: Money = Field(
        ..., gt=0, validation_alias=AliasChoices("amountOwned", "amountOwed", "amount_owed")
    )


class _SplitRequest(_Request):
    amount: Money = Field(..., gt=0)
    description: str = Field(default="", max_length=1000)
    category: str = Field(..., min_length=1, max_length=100)
    split_type: SplitType = Field(
        default=SplitType.EXACT, validation_alias=AliasChoices("splitType", "split_type")
    )
    shares: Optional[List[ShareRequest]] = None
    members: Optional[List[str]] = None
    percentages: Optional[Dict[str, Percent]] = None

    @model_validator(mode="after")
    def _split_inputs_present(self):
        if self.split_type is SplitType.EXACT and not self.shares:
            raise ValueError("shares are required for an exact split")
        if self.split_type is SplitType.EQUAL and not self.members:
            raise ValueError("members are required for an equal split")
        if self.split_type is SplitType.PERCENTAGE and not self.percentages:
            raise ValueError("percentages are required for a percentage split")
        return self

    def split_kwargs(self) -> Dict[str, Any]:
        return {
            "split_type": self.split_type,
            "shares": [(s.username, s.amount_owed) for s in self.shares or []],
            "members": list(self.members or []),
            "percentages": dict(self.percentages or {}),
        }


class AddExpenseRequest(_SplitRequest):
    group_id: int = Field(..., validation_alias=AliasChoices("groupId", "group_id"))
    paid_by: str = Field(..., min_length=1, validation_alias=AliasChoices("paidBy", "paid_by"))


class EditExpenseRequest(_SplitRequest):
    pass


class PageQuery(_Request):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)


# ------------------ SETTLEMENTS ------------------

class SettleUpRequest(_Request):
    from_user_id: int = Field(..., validation_alias=AliasChoices("fromUserId", "from_user_id"))
    to_user_id: int = Field(..., validation_alias=AliasChoices("toUserId", "to_user_id"))
    amount: Money = Field(..., gt=0)
    idempotency_key: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=64,
        validation_alias=AliasChoices("idempotencyKey", "idempotency_key"),
    )

    @model_validator(mode="after")
    def _distinct_parties(self):
        if self.from_user_id == self.to_user_id:
            raise ValueError("cannot settle up with yourself")
        return self


# ------------------ HELPERS ------------------

def validate_payload(
    schema: Type[SchemaT], payload: Optional[Dict[str, Any]]
) -> Tuple[Optional[SchemaT], Optional[str]]:
    """
    Validate a request body against ``schema``.

    Returns:
        Tuple of (model, None) on success or (None, error_message)
    """
    if payload is not None and not isinstance(payload, dict):
        return None, "Request body must be a JSON object"
    try:
        return schema.model_validate(payload or {}), None
    except PydanticValidationError as exc:
        return None, _first_error(exc)


def _first_error(exc: PydanticValidationError) -> str:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error.get("loc", ()) if part != "__root__")
    message = error.get("msg", "invalid value")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return f"{field}: {message}" if field else message
