from pydantic import BaseModel
from typing import Optional

class TokenData(BaseModel):
    # The token subject is the user id
    user_id: Optional[int] = None
