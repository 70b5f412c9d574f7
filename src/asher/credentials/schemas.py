"""Per-provider credential shapes for source configuration input.

Each provider has one config model whose ``provider_type`` is a literal tag;
``SourceConfig`` is the tagged union of all of them. Input is accepted in the
camelCase wire form (``providerType``, ``friendlyName``) or in snake_case.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from asher.adapters.scrapers.base import ProviderType
from asher.core.errors import ValidationError

NonEmptyStr = Annotated[str, Field(min_length=1)]
CardDigits = Annotated[str, Field(min_length=6, max_length=6, pattern=r"^\d{6}$")]


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# Credential field sets


class UsernamePasswordCredentials(_CamelModel):
    username: NonEmptyStr
    password: NonEmptyStr


class HapoalimCredentials(_CamelModel):
    user_code: NonEmptyStr
    password: NonEmptyStr


class IdPasswordNumCredentials(_CamelModel):
    """Discount and Mercantile."""

    id: NonEmptyStr
    password: NonEmptyStr
    num: NonEmptyStr


class IsracardCredentials(_CamelModel):
    id: NonEmptyStr
    card6_digits: CardDigits
    password: NonEmptyStr


class AmexCredentials(_CamelModel):
    username: NonEmptyStr
    card6_digits: CardDigits
    password: NonEmptyStr


class YahavCredentials(_CamelModel):
    username: NonEmptyStr
    password: NonEmptyStr
    national_id: NonEmptyStr = Field(alias="nationalID")


class IdPasswordCredentials(_CamelModel):
    id: NonEmptyStr
    password: NonEmptyStr


# Source configs


class _SourceConfigBase(_CamelModel):
    friendly_name: NonEmptyStr
    tags: list[str] = Field(default_factory=list)
    credentials: BaseModel

    def credentials_payload(self) -> dict[str, Any]:
        """Credentials in the wire form the scraper bridge expects."""
        return self.credentials.model_dump(by_alias=True)


class HapoalimSourceConfig(_SourceConfigBase):
    provider_type: Literal["hapoalim"]
    credentials: HapoalimCredentials


class LeumiSourceConfig(_SourceConfigBase):
    provider_type: Literal["leumi"]
    credentials: UsernamePasswordCredentials


class DiscountSourceConfig(_SourceConfigBase):
    provider_type: Literal["discount"]
    credentials: IdPasswordNumCredentials


class MercantileSourceConfig(_SourceConfigBase):
    provider_type: Literal["mercantile"]
    credentials: IdPasswordNumCredentials


class MizrahiSourceConfig(_SourceConfigBase):
    provider_type: Literal["mizrahi"]
    credentials: UsernamePasswordCredentials


class BeinleumiSourceConfig(_SourceConfigBase):
    provider_type: Literal["beinleumi"]
    credentials: UsernamePasswordCredentials


class MassadSourceConfig(_SourceConfigBase):
    provider_type: Literal["massad"]
    credentials: UsernamePasswordCredentials


class OtsarHahayalSourceConfig(_SourceConfigBase):
    provider_type: Literal["otsarHahayal"]
    credentials: UsernamePasswordCredentials


class VisaCalSourceConfig(_SourceConfigBase):
    provider_type: Literal["visaCal"]
    credentials: UsernamePasswordCredentials


class MaxSourceConfig(_SourceConfigBase):
    provider_type: Literal["max"]
    credentials: UsernamePasswordCredentials


class IsracardSourceConfig(_SourceConfigBase):
    provider_type: Literal["isracard"]
    credentials: IsracardCredentials


class AmexSourceConfig(_SourceConfigBase):
    provider_type: Literal["amex"]
    credentials: AmexCredentials


class YahavSourceConfig(_SourceConfigBase):
    provider_type: Literal["yahav"]
    credentials: YahavCredentials


class BeyahadBishvilhaSourceConfig(_SourceConfigBase):
    provider_type: Literal["beyahadBishvilha"]
    credentials: IdPasswordCredentials


SOURCE_CONFIG_MODELS: dict[ProviderType, type[_SourceConfigBase]] = {
    ProviderType.HAPOALIM: HapoalimSourceConfig,
    ProviderType.LEUMI: LeumiSourceConfig,
    ProviderType.DISCOUNT: DiscountSourceConfig,
    ProviderType.MERCANTILE: MercantileSourceConfig,
    ProviderType.MIZRAHI: MizrahiSourceConfig,
    ProviderType.BEINLEUMI: BeinleumiSourceConfig,
    ProviderType.MASSAD: MassadSourceConfig,
    ProviderType.OTSAR_HAHAYAL: OtsarHahayalSourceConfig,
    ProviderType.VISA_CAL: VisaCalSourceConfig,
    ProviderType.MAX: MaxSourceConfig,
    ProviderType.ISRACARD: IsracardSourceConfig,
    ProviderType.AMEX: AmexSourceConfig,
    ProviderType.YAHAV: YahavSourceConfig,
    ProviderType.BEYAHAD_BISHVILHA: BeyahadBishvilhaSourceConfig,
}


def _provider_tag(value: Any) -> str | None:
    if isinstance(value, dict):
        tag = value.get("providerType", value.get("provider_type"))
    else:
        tag = getattr(value, "provider_type", None)
    return str(tag) if tag is not None else None


SourceConfig = Annotated[
    Union[
        Annotated[HapoalimSourceConfig, Tag("hapoalim")],
        Annotated[LeumiSourceConfig, Tag("leumi")],
        Annotated[DiscountSourceConfig, Tag("discount")],
        Annotated[MercantileSourceConfig, Tag("mercantile")],
        Annotated[MizrahiSourceConfig, Tag("mizrahi")],
        Annotated[BeinleumiSourceConfig, Tag("beinleumi")],
        Annotated[MassadSourceConfig, Tag("massad")],
        Annotated[OtsarHahayalSourceConfig, Tag("otsarHahayal")],
        Annotated[VisaCalSourceConfig, Tag("visaCal")],
        Annotated[MaxSourceConfig, Tag("max")],
        Annotated[IsracardSourceConfig, Tag("isracard")],
        Annotated[AmexSourceConfig, Tag("amex")],
        Annotated[YahavSourceConfig, Tag("yahav")],
        Annotated[BeyahadBishvilhaSourceConfig, Tag("beyahadBishvilha")],
    ],
    Discriminator(_provider_tag),
]

_SOURCE_CONFIG_LIST: TypeAdapter[list[SourceConfig]] = TypeAdapter(list[SourceConfig])


def _format_errors(error: PydanticValidationError) -> str:
    messages = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"])
        messages.append(f"{location}: {detail['msg']}" if location else detail["msg"])
    return "; ".join(messages)


def parse_source_configs(data: Any) -> list[SourceConfig]:
    """
    Validate source configuration input.

    Args:
        data: A list of source configs, or an object with a ``credentials``
            list holding them

    Returns:
        Validated configs, one per entry

    Raises:
        ValidationError: On unknown provider types or credential shape mismatches
    """
    if isinstance(data, dict):
        if "credentials" not in data:
            raise ValidationError("Expected a list of sources or a 'credentials' list")
        data = data["credentials"]
    if not isinstance(data, list):
        raise ValidationError("Expected a list of sources")

    try:
        return _SOURCE_CONFIG_LIST.validate_python(data)
    except PydanticValidationError as e:
        detail = _format_errors(e)
        raise ValidationError(f"Invalid source configuration: {detail}") from e


def credential_fields(provider_type: ProviderType) -> list[str]:
    """Wire names of the credential fields a provider requires."""
    model = SOURCE_CONFIG_MODELS[provider_type]
    credentials_model = model.model_fields["credentials"].annotation
    assert isinstance(credentials_model, type)
    assert issubclass(credentials_model, BaseModel)
    return [
        field.alias or name for name, field in credentials_model.model_fields.items()
    ]
