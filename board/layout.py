"""Card placement on the story board."""
from typing import List, Optional, Sequence

from utils.logger import setup_logger
from extraction.models import Position
import config

logger = setup_logger(__name__)


class LayoutEngine:
    """Assigns non-overlapping board positions to entities."""

    def __init__(
        self,
        origin: Optional[Position] = None,
        columns: int = config.GRID_COLUMNS,
        cell_width: float = config.CARD_WIDTH,
        cell_height: float = config.CARD_HEIGHT
    ):
        """Initialize layout engine.

        Args:
            origin: Top-left cell of a new batch
            columns: Cells per grid row
            cell_width: Card width
            cell_height: Card height
        """
        self.origin = origin or Position(x=config.GRID_ORIGIN_X, y=config.GRID_ORIGIN_Y)
        self.columns = columns
        self.cell_width = cell_width
        self.cell_height = cell_height

    def grid_position(self, i: int, origin: Optional[Position] = None) -> Position:
        """Row-major grid cell of the i-th card of a batch."""
        origin = origin or self.origin
        return Position(
            x=origin.x + (i % self.columns) * self.cell_width,
            y=origin.y + (i // self.columns) * self.cell_height
        )

    def batch_origin(self, existing_positions: Sequence[Position]) -> Position:
        """Grid origin for a new batch, below any cards already on the board."""
        if not existing_positions:
            return self.origin

        lowest = max(pos.y for pos in existing_positions)
        return Position(
            x=self.origin.x,
            y=max(self.origin.y, lowest + self.cell_height)
        )

    def place(self, entities: List, existing_positions: Optional[Sequence[Position]] = None) -> List:
        """Place a newly reconciled batch in a grid.

        Args:
            entities: Entities without positions, in display order
            existing_positions: Positions of cards already on the board

        Returns:
            Copies of the entities with positions assigned
        """
        origin = self.batch_origin(existing_positions or [])

        placed = [
            entity.model_copy(update={'position': self.grid_position(i, origin)})
            for i, entity in enumerate(entities)
        ]

        logger.info(f"Placed {len(placed)} cards from ({origin.x}, {origin.y})")
        return placed

    def overlaps(self, candidate: Position, existing_positions: Sequence[Position]) -> bool:
        return any(
            abs(candidate.x - pos.x) < self.cell_width and abs(candidate.y - pos.y) < self.cell_height
            for pos in existing_positions
        )

    def find_empty_position(
        self,
        existing_positions: Sequence[Position],
        start_x: float = config.PLACEMENT_START_X,
        start_y: float = config.PLACEMENT_START_Y,
        max_x: float = config.BOARD_MAX_X,
        max_iterations: int = config.PLACEMENT_MAX_ITERATIONS
    ) -> Position:
        """Find a free spot for a single manually added card.

        Candidates are scanned left to right, top to bottom in card-sized
        steps. After max_iterations the last candidate is used even if it
        overlaps.

        Args:
            existing_positions: Positions of cards already on the board
            start_x: First candidate x
            start_y: First candidate y
            max_x: Wrap to the next row past this x
            max_iterations: Scan limit

        Returns:
            Position for the new card
        """
        x, y = start_x, start_y
        iterations = 0

        while self.overlaps(Position(x=x, y=y), existing_positions) and iterations < max_iterations:
            x += self.cell_width
            if x > max_x:
                x = start_x
                y += self.cell_height
            iterations += 1

        return Position(x=x, y=y)
