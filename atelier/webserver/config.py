"""
Configuration helpers for the image-generation proxy server.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

DEV_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:4411",
    "http://localhost:5173",
]


def parse_api_tokens(raw: str) -> Dict[str, str]:
    """Parses ``token:role,token:role`` into a mapping (role defaults to admin)."""
    tokens: Dict[str, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        token, _, role = entry.partition(":")
        tokens[token.strip()] = role.strip() or "admin"
    return tokens


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3001
    production: bool = False
    openrouter_api_key: Optional[str] = None
    api_tokens: Dict[str, str] = field(default_factory=dict)
    max_body_bytes: int = 15 * 1024 * 1024

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Builds a config from environment variables (see .env)."""
        return cls(
            host=os.environ.get("ATELIER_HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "3001")),
            production=os.environ.get("ATELIER_ENV", "development") == "production",
            openrouter_api_key=os.environ.get("OPENROUTER_API_KEY") or None,
            api_tokens=parse_api_tokens(os.environ.get("ATELIER_API_TOKENS", "")),
        )
