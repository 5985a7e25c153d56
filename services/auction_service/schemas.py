from typing import List

from pydantic import BaseModel


class ConclusionSummary(BaseModel):
    due: int = 0
    concluded: List[int] = []       # product ids
    orders_created: List[int] = []  # order ids
    skipped: List[int] = []         # already concluded by a concurrent sweep
    failed: List[int] = []          # left for the next run
