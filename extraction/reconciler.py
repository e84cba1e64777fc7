"""Merging of per-chunk entity drafts into the final entity set."""
import math
from typing import Dict, List, Optional, Sequence, Tuple

from utils.logger import RunLog, setup_logger
from extraction.models import (
    BookType,
    CollectionEntity,
    EntityDraft,
    EntityKind,
    KIND_PRIORITY,
    NovelEntity
)
from ingestion.models import Section, extractable_sections

logger = setup_logger(__name__)

DraftKey = Tuple[EntityKind, str]


def merge_drafts(kept: EntityDraft, duplicate: EntityDraft) -> EntityDraft:
    """Union the duplicate's section numbers into the kept draft."""
    numbers = sorted(set(kept.section_numbers) | set(duplicate.section_numbers))
    return kept.model_copy(update={'section_numbers': numbers})


def deduplicate(drafts: Sequence[EntityDraft]) -> List[EntityDraft]:
    """Collapse drafts with the same kind and name, keeping first-seen order.

    Names are compared case-insensitively after trimming. The first draft's
    name and description are kept.

    Args:
        drafts: Drafts in chunk order

    Returns:
        Deduplicated drafts
    """
    merged: Dict[DraftKey, EntityDraft] = {}
    for draft in drafts:
        key = draft.normalized_key
        if key in merged:
            merged[key] = merge_drafts(merged[key], draft)
        else:
            merged[key] = draft.model_copy(
                update={'section_numbers': sorted(set(draft.section_numbers))}
            )
    return list(merged.values())


class EntityReconciler:
    """Merges per-chunk drafts into one entity list according to the book type."""

    def reconcile(
        self,
        drafts_by_chunk: Sequence[Sequence[EntityDraft]],
        mode: BookType,
        sections: List[Section],
        run_log: Optional[RunLog] = None
    ):
        """Reconcile drafts from all chunks.

        Args:
            drafts_by_chunk: Drafts of each chunk, in chunk order
            mode: Novel merges same-named entities, collection keeps them apart
            sections: Manuscript sections (front matter is ignored)
            run_log: Run log for diagnostics

        Returns:
            List of NovelEntity or CollectionEntity without positions, sorted
            by kind priority then by first section
        """
        drafts = [draft for chunk in drafts_by_chunk for draft in chunk]

        if mode == BookType.NOVEL:
            reconciled = deduplicate(drafts)
        else:
            reconciled = list(drafts)

        if run_log:
            run_log.log("Deduplication complete", mode=mode.value, before=len(drafts), after=len(reconciled))

        by_number = dict(enumerate(extractable_sections(sections), start=1))

        keyed = []
        dropped_refs = 0
        for position, draft in enumerate(reconciled):
            numbers = sorted({n for n in draft.section_numbers if n in by_number})
            dropped_refs += len(set(draft.section_numbers)) - len(numbers)

            entity = self._to_entity(draft, mode, [by_number[n] for n in numbers])
            first_section = numbers[0] if numbers else math.inf
            keyed.append(((KIND_PRIORITY[draft.kind], first_section, position), entity))

        if dropped_refs:
            logger.warning(f"Dropped {dropped_refs} references to unknown section numbers")
            if run_log:
                run_log.warning("Dropped unresolvable section references", count=dropped_refs)

        keyed.sort(key=lambda pair: pair[0])
        return [entity for _, entity in keyed]

    def _to_entity(self, draft: EntityDraft, mode: BookType, sections: List[Section]):
        if mode == BookType.COLLECTION:
            return CollectionEntity(
                kind=draft.kind,
                name=draft.name,
                description=draft.description,
                section_titles=[s.title for s in sections]
            )
        return NovelEntity(
            kind=draft.kind,
            name=draft.name,
            description=draft.description,
            section_refs=[s.id for s in sections]
        )
