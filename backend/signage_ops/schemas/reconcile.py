from enum import Enum

from pydantic import BaseModel, Field, field_validator


class ReferenceStyle(str, Enum):
    canonical = "canonical"
    public = "public"


class BucketRule(BaseModel):
    bucket: str
    keywords: tuple[str, ...] = Field(min_length=1)

    @field_validator("keywords", mode="before")
    @classmethod
    def _split_keywords(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        return tuple(str(keyword).strip().lower() for keyword in value if str(keyword).strip())


class ReconcileTarget(BaseModel):
    table: str
    name_field: str = "name"
    image_field: str = "image_url"
    id_field: str = "id"
    buckets: tuple[str, ...] = ("products",)


DEFAULT_BUCKET_RULES: tuple[BucketRule, ...] = (
    BucketRule(bucket="branding", keywords=("logo", "favicon", "brand")),
    BucketRule(
        bucket="uniforms",
        keywords=("uniform", "shirt", "jersey", "tunic", "hat", "pants", "shorts"),
    ),
    BucketRule(bucket="ui-elements", keywords=("placeholder", "icon")),
    BucketRule(
        bucket="announcements",
        keywords=("announcement", "exam", "sale", "term supplies", "term-supplies"),
    ),
)

DEFAULT_RECONCILE_TARGETS: tuple[ReconcileTarget, ...] = (
    ReconcileTarget(table="products", name_field="name", buckets=("products", "uniforms")),
    ReconcileTarget(table="categories", name_field="name", buckets=("products", "ui-elements")),
    ReconcileTarget(
        table="announcements",
        name_field="title",
        buckets=("announcements", "ui-elements", "products"),
    ),
)
