"""
clock.py - Height clock for market deadlines

Markets close at a height, not a wall-clock time. The ledger reads the
height through the HeightClock protocol and never mutates it; ManualClock
is the implementation used by simulations and tests, where the caller
advances the height explicitly.
"""


class ManualClock:
    """
    Height clock advanced by hand.

    Height can only move forward, never backward.

    Example:
        clock = ManualClock(initial_height=100)
        clock.advance(10)
        clock.current_height  # 110
    """

    def __init__(self, initial_height: int = 0):
        if initial_height < 0:
            raise ValueError(f"initial_height must be non-negative, got {initial_height}")
        self._height = initial_height

    @property
    def current_height(self) -> int:
        return self._height

    def advance(self, blocks: int = 1) -> int:
        """
        Move the clock forward by a number of blocks.

        Returns:
            The new height

        Raises:
            ValueError: If blocks is negative
        """
        if blocks < 0:
            raise ValueError(f"Cannot move height backwards by {blocks} blocks")
        self._height += blocks
        return self._height

    def advance_to(self, height: int) -> int:
        """
        Move the clock to an absolute height.

        Raises:
            ValueError: If height is below the current height
        """
        if height < self._height:
            raise ValueError(f"Cannot move height backwards: {height} < {self._height}")
        self._height = height
        return self._height

    def __repr__(self):
        return f"ManualClock(height={self._height})"
