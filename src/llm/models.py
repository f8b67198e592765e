from pydantic import BaseModel, Field
from typing import Dict, Any, List, Optional


class ChatMessage(BaseModel):
    """Mensaje enviado al endpoint de chat completions"""
    role: str = Field(..., description="system | user | assistant")
    content: str


class GenerationRequest(BaseModel):
    """Cuerpo enviado al servicio de generación"""
    model: str
    messages: List[ChatMessage]
    temperature: float = Field(0.7, ge=0, le=2)
    max_tokens: int = Field(2000, gt=0)
    response_format: Optional[Dict[str, str]] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class GenerationResult(BaseModel):
    """Texto generado junto con los metadatos del modelo"""
    content: str
    model: str
    usage: Dict[str, Any] = Field(default_factory=dict)
