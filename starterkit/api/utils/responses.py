"""JSON response class using orjson serialization.

:class:`ORJSONResponse` is the default response class of the application and
is also used directly by middleware that has to answer without reaching a
route (recovered exceptions). orjson handles ``datetime`` and ``UUID`` values
natively, which covers every field of the user resource.
"""

from typing import Any

import orjson
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ORJSONResponse(JSONResponse):
    """JSON response rendered with orjson.

    Attributes:
        media_type: The media type for the response.
    """

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401
        """Render the content as JSON using orjson.

        Args:
            content: The content to serialize to JSON.

        Returns:
            bytes: The JSON-encoded bytes.
        """
        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json")

        # Use consistent sorting for predictable output
        return orjson.dumps(content, option=orjson.OPT_SORT_KEYS)
