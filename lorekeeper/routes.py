"""
HTTP routes for the lorekeeper API.

Routes only translate between JSON payloads and store calls; every failure is
a ``StoreError`` rendered by the handler installed in ``app.py``.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from lorekeeper.articles import ArticleStore
from lorekeeper.auth import require_bearer_token
from lorekeeper.categories import CategoryStore
from lorekeeper.decks import CardUpload, DeckStore
from lorekeeper.dependencies import (
    get_article_store,
    get_category_store,
    get_deck_store,
)
from lorekeeper.errors import BadRequestError
from lorekeeper.schemas import (
    ArticleCreateRequest,
    ArticleDeleteRequest,
    ArticleSummaryResponse,
    ArticleUpdateRequest,
    ArticleWriteResponse,
    CardLinkResponse,
    CategoryCreateRequest,
    CategoryResponse,
    DeckDeleteResponse,
    DeckFilesResponse,
    DeckResponse,
    DeckUploadRequest,
    DeckUploadResponse,
    MessageResponse,
)

router = APIRouter(dependencies=[Depends(require_bearer_token)])


# ---------------- Articles


@router.get("/articles", response_model=list[ArticleSummaryResponse])
def list_articles(store: ArticleStore = Depends(get_article_store)):
    return [
        ArticleSummaryResponse(id=summary.id, content=summary.content)
        for summary in store.list()
    ]


@router.get("/articles/{article_id}")
def get_article(article_id: str, store: ArticleStore = Depends(get_article_store)) -> Any:
    return store.read(article_id)


@router.post("/articles", response_model=ArticleWriteResponse, status_code=201)
def create_article(
    payload: ArticleCreateRequest, store: ArticleStore = Depends(get_article_store)
):
    article = payload.articleJSON or {}
    title = article.get("title")
    if not isinstance(title, str) or not title:
        raise BadRequestError("Article title is required")
    envelope = store.create(title, article, payload.password)
    return ArticleWriteResponse(
        message="Article created", id=title, version=envelope.version
    )


@router.put("/articles/{article_id}", response_model=ArticleWriteResponse)
def update_article(
    article_id: str,
    payload: ArticleUpdateRequest,
    store: ArticleStore = Depends(get_article_store),
):
    envelope = store.update(article_id, payload.password, payload.articleJSON)
    return ArticleWriteResponse(
        message="Article updated", id=article_id, version=envelope.version
    )


@router.delete("/articles/{article_id}", response_model=MessageResponse)
def delete_article(
    article_id: str,
    payload: ArticleDeleteRequest,
    store: ArticleStore = Depends(get_article_store),
):
    store.delete(article_id, payload.password)
    return MessageResponse(message="Article deleted")


# ---------------- Categories


@router.post("/categories", response_model=MessageResponse, status_code=201)
def create_category(
    payload: CategoryCreateRequest, store: CategoryStore = Depends(get_category_store)
):
    store.create(payload.id, payload.name)
    return MessageResponse(message="Category created")


@router.get("/categories", response_model=list[CategoryResponse])
def list_categories(store: CategoryStore = Depends(get_category_store)):
    return [CategoryResponse(**category.as_dict()) for category in store.list()]


@router.get("/categories/{category_id}", response_model=CategoryResponse)
def get_category(category_id: str, store: CategoryStore = Depends(get_category_store)):
    return CategoryResponse(**store.get(category_id).as_dict())


@router.delete("/categories/{category_id}", response_model=MessageResponse)
def delete_category(
    category_id: str, store: CategoryStore = Depends(get_category_store)
):
    store.delete(category_id)
    return MessageResponse(message="Category deleted")


# ---------------- Cards


@router.get("/cards", response_model=list[DeckResponse])
def list_decks(store: DeckStore = Depends(get_deck_store)):
    return [
        DeckResponse(
            title=deck.title,
            cards=[CardLinkResponse(name=c.name, url=c.url) for c in deck.cards],
        )
        for deck in store.list_all_decks()
    ]


@router.get("/cards/{title}", response_model=DeckFilesResponse)
def list_deck(title: str, store: DeckStore = Depends(get_deck_store)):
    return DeckFilesResponse(files=store.list_deck(title))


@router.post("/cards", response_model=DeckUploadResponse, status_code=201)
def upload_deck(payload: DeckUploadRequest, store: DeckStore = Depends(get_deck_store)):
    if not payload.title or payload.cards is None:
        raise BadRequestError("A title and a list of cards are required")
    files = store.upload_deck(
        payload.title,
        [
            CardUpload(name=c.name, svg_base64=c.svgBase64, png_base64=c.pngBase64)
            for c in payload.cards
        ],
    )
    return DeckUploadResponse(
        message=f"Cards uploaded to /{payload.title}/",
        uploaded=len(files),
        files=files,
    )


@router.delete("/cards/{title}", response_model=DeckDeleteResponse)
def delete_deck(title: str, store: DeckStore = Depends(get_deck_store)):
    deleted = store.delete_deck(title)
    return DeckDeleteResponse(
        message=f'Deck "{title}" deleted ({deleted} cards)', deleted=deleted
    )


@router.delete("/cards", response_model=DeckDeleteResponse)
def delete_all_decks(store: DeckStore = Depends(get_deck_store)):
    deleted = store.delete_all_decks()
    return DeckDeleteResponse(message=f"Deleted {deleted} cards in total", deleted=deleted)
