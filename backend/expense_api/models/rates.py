from pydantic import BaseModel


class RatesResponse(BaseModel):
    rates: dict[str, float]
    ts: int
    base: str
    provider: str
