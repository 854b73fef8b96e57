"""
Catalog walking: drain the cursor-paginated cards list for a set of
category filters.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from . import config
from .models import ApiError, CardsPage, CardsPageRequest, ProductCard, SkuIntegrityError

FetchPage = Callable[[CardsPageRequest], CardsPage]


@dataclass
class CatalogWalk:
    """Cards collected by one walk. `error` is set when the walk stopped on an upstream failure."""
    cards: List[ProductCard] = field(default_factory=list)
    pages: int = 0
    error: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.error is None


def walk_catalog(fetch_page: FetchPage, category_ids: List[int],
                 limit: int = config.CARDS_PAGE_LIMIT) -> CatalogWalk:
    """
    Request pages until the source signals end of data.

    Stops on an empty page, on an exhausted cursor (empty timestamp or zero
    id), or on an upstream failure. A failure is not fatal: the cards
    collected so far are kept and the error is reported on the result.
    Cards are de-duplicated by catalog id.
    """
    walk = CatalogWalk()
    seen: Dict[int, int] = {}
    request = CardsPageRequest(category_ids=list(category_ids), limit=limit)

    print(f"Loading catalog cards for categories {list(category_ids)}...", flush=True)
    while True:
        try:
            page = fetch_page(request)
        except ApiError as e:
            walk.error = str(e)
            print(f"  [WARN] Card list request failed, keeping {len(walk.cards)} cards: {e}", flush=True)
            break

        walk.pages += 1
        if not page.cards:
            print("  No more cards to load.", flush=True)
            break

        for card in page.cards:
            if card.nm_id in seen:
                walk.cards[seen[card.nm_id]] = card
                continue
            seen[card.nm_id] = len(walk.cards)
            walk.cards.append(card)

        if page.cursor.exhausted:
            break

        print(f"  Page {walk.pages}: loaded {len(walk.cards)} cards, continuing...", flush=True)
        request = CardsPageRequest(
            category_ids=request.category_ids,
            limit=limit,
            updated_at=page.cursor.updated_at,
            last_nm_id=page.cursor.nm_id,
        )

    print(f"Loaded {len(walk.cards)} cards in {walk.pages} page(s)", flush=True)
    return walk


def single_sku(card: ProductCard) -> str:
    """Return the card's only stock-keeping id. Zero or several is a data-integrity fault."""
    if len(card.skus) != 1:
        raise SkuIntegrityError(
            f"Expected exactly 1 SKU, found {len(card.skus)}: {card.skus[:5]}",
            vendor_code=card.vendor_code,
        )
    return card.skus[0]
