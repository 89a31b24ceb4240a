from pydantic import BaseModel


class PromptDocument(BaseModel):
    key: str
    prompt: str
    is_default: bool = True


class PromptUpdate(BaseModel):
    prompt: str
