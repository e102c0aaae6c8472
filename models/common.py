from typing import Annotated
from pydantic import BeforeValidator

# Mongo ObjectIds travel through the models as plain strings.
PyObjectId = Annotated[str, BeforeValidator(str)]
