from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    phid: str
    username: str
    name: str
    created_at: int
    updated_at: int
