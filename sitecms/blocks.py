# sitecms/blocks.py
# Modelo de bloques: unión etiquetada sobre el conjunto cerrado de tipos
# + variante "unknown" para contenido guardado por versiones futuras/antiguas.
from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import Annotated, Any, Iterable, List, Literal, Mapping, Union

from pydantic import (
    BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter,
    ValidationError as PydanticValidationError,
)

log = logging.getLogger(__name__)


class BlockType(str, Enum):
    HERO = "hero"
    TEXT_IMAGE = "text-image"
    GALLERY = "gallery"
    POSTS_FEED = "posts-feed"
    CTA = "cta"


KNOWN_BLOCK_TYPES = frozenset(t.value for t in BlockType)
UNKNOWN_TAG = "unknown"

# Nombres del registro legado ({"sections": [{"type": "Hero", "props": ...}]})
LEGACY_TYPE_NAMES = {
    "Hero": BlockType.HERO.value,
    "TextImage": BlockType.TEXT_IMAGE.value,
    "Gallery": BlockType.GALLERY.value,
    "PostsFeed": BlockType.POSTS_FEED.value,
    "Cta": BlockType.CTA.value,
    "CTA": BlockType.CTA.value,
}


def new_block_id() -> str:
    return uuid.uuid4().hex


# -----------------------------
# Property bags (uno por tipo)
# -----------------------------
class _Properties(BaseModel):
    # extra="allow": las claves nuevas sobreviven sin migración
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class HeroProperties(_Properties):
    title: str = ""
    subtitle: str = ""
    image: str = ""


class TextImageProperties(_Properties):
    heading: str = ""
    text: str = ""
    image: str = ""
    image_position: str = Field("right", alias="imagePosition")  # "left" | "right"


class GalleryProperties(_Properties):
    images: List[Any] = Field(default_factory=list)


class PostsFeedProperties(_Properties):
    limit: int = 3
    category: str = ""


class CtaProperties(_Properties):
    title: str = ""
    button_label: str = Field("", alias="buttonLabel")
    button_link: str = Field("", alias="buttonLink")


# -----------------------------
# Bloques
# -----------------------------
class _BlockBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_block_id)


class HeroBlock(_BlockBase):
    type: Literal["hero"] = "hero"
    properties: HeroProperties = Field(default_factory=HeroProperties)


class TextImageBlock(_BlockBase):
    type: Literal["text-image"] = "text-image"
    properties: TextImageProperties = Field(default_factory=TextImageProperties)


class GalleryBlock(_BlockBase):
    type: Literal["gallery"] = "gallery"
    properties: GalleryProperties = Field(default_factory=GalleryProperties)


class PostsFeedBlock(_BlockBase):
    type: Literal["posts-feed"] = "posts-feed"
    properties: PostsFeedProperties = Field(default_factory=PostsFeedProperties)


class CtaBlock(_BlockBase):
    type: Literal["cta"] = "cta"
    properties: CtaProperties = Field(default_factory=CtaProperties)


class UnknownBlock(_BlockBase):
    """Tipo no reconocido: se conserva tal cual, nunca se renderiza."""

    type: str
    properties: dict[str, Any] = Field(default_factory=dict)


def _block_tag(value: Any) -> str:
    t = value.get("type") if isinstance(value, Mapping) else getattr(value, "type", None)
    if isinstance(t, BlockType):
        t = t.value
    return t if t in KNOWN_BLOCK_TYPES else UNKNOWN_TAG


Block = Annotated[
    Union[
        Annotated[HeroBlock, Tag("hero")],
        Annotated[TextImageBlock, Tag("text-image")],
        Annotated[GalleryBlock, Tag("gallery")],
        Annotated[PostsFeedBlock, Tag("posts-feed")],
        Annotated[CtaBlock, Tag("cta")],
        Annotated[UnknownBlock, Tag(UNKNOWN_TAG)],
    ],
    Discriminator(_block_tag),
]

_block_adapter: TypeAdapter[Block] = TypeAdapter(Block)


# -----------------------------
# Operaciones
# -----------------------------
def default_properties(block_type: BlockType | str) -> dict[str, Any]:
    """Property bag canónico para un bloque recién insertado en el editor."""
    t = block_type.value if isinstance(block_type, BlockType) else block_type
    if t == "hero":
        return {"title": "New Hero Section", "subtitle": "Add your subtitle here", "image": ""}
    if t == "text-image":
        return {"heading": "New Heading", "text": "Add your content here", "image": "", "imagePosition": "right"}
    if t == "gallery":
        return {"images": []}
    if t == "posts-feed":
        return {"limit": 3, "category": ""}
    if t == "cta":
        return {"title": "Call to Action", "buttonLabel": "Get Started", "buttonLink": "#"}
    return {}


def validate_block(block: Any) -> bool:
    """True si el tipo pertenece a la enumeración. No valida la forma del property bag."""
    return _block_tag(block) != UNKNOWN_TAG


def parse_block(raw: Any) -> Block:
    """Estricto: lanza pydantic.ValidationError si el property bag no cuadra con su tipo."""
    if isinstance(raw, BaseModel):
        return raw  # type: ignore[return-value]
    return _block_adapter.validate_python(raw)


def new_block(block_type: BlockType | str, properties: Mapping[str, Any] | None = None) -> Block:
    props = default_properties(block_type)
    if properties:
        props.update(properties)
    t = block_type.value if isinstance(block_type, BlockType) else block_type
    return parse_block({"id": new_block_id(), "type": t, "properties": props})


def block_to_dict(block: Block) -> dict[str, Any]:
    return block.model_dump(mode="json", by_alias=True)


def with_properties(block: Block, patch: Mapping[str, Any]) -> Block:
    """Merge superficial del patch sobre el property bag; devuelve un bloque nuevo (mismo id)."""
    data = block_to_dict(block)
    data["properties"] = {**data.get("properties", {}), **dict(patch)}
    return parse_block(data)


def _lenient(raw: Mapping[str, Any], position: int, fresh_ids: bool = False) -> Block:
    data = dict(raw)
    # formato legado: {"type", "props"} sin id
    if "properties" not in data and "props" in data:
        data["properties"] = data.pop("props") or {}
        legacy_type = data.get("type")
        if isinstance(legacy_type, str):
            data["type"] = LEGACY_TYPE_NAMES.get(legacy_type, legacy_type)
    if not data.get("id"):
        # contenido guardado: id determinista; entrada nueva del editor/API: uuid
        data["id"] = new_block_id() if fresh_ids else f"legacy-{position}"
    try:
        return _block_adapter.validate_python(data)
    except PydanticValidationError as e:
        log.warning("Block %s (%s) has malformed properties, keeping it as unknown: %s",
                    data.get("id"), data.get("type"), e.errors()[:1])
        props = data.get("properties")
        return UnknownBlock(
            id=str(data["id"]),
            type=str(data.get("type") or UNKNOWN_TAG),
            properties=dict(props) if isinstance(props, Mapping) else {},
        )


def parse_blocks(raw: Iterable[Any] | None, *, fresh_ids: bool = False) -> list[Block]:
    """Parseo tolerante: nunca falla por un bloque mal formado."""
    out: list[Block] = []
    for i, item in enumerate(raw or []):
        if isinstance(item, BaseModel):
            out.append(item)  # type: ignore[arg-type]
        elif isinstance(item, Mapping):
            out.append(_lenient(item, i, fresh_ids))
        else:
            log.warning("Skipping non-object block at position %s", i)
    return out


def blocks_from_content(content: Mapping[str, Any] | None) -> list[Block]:
    if not content:
        return []
    if "blocks" in content:
        return parse_blocks(content.get("blocks"))
    return parse_blocks(content.get("sections"))


def content_from_blocks(blocks: Iterable[Block]) -> dict[str, Any]:
    return {"blocks": [block_to_dict(b) for b in blocks]}


def renderable_blocks(blocks: Iterable[Block]) -> list[Block]:
    """Filtra los tipos desconocidos (warning, no error) antes de entregarlos al render."""
    out: list[Block] = []
    for b in blocks:
        # un tipo conocido degradado a UnknownBlock (props ilegibles) tampoco se renderiza
        if validate_block(b) and not isinstance(b, UnknownBlock):
            out.append(b)
        else:
            log.warning("Unknown block type %r (id=%s), skipped", b.type, b.id)
    return out
