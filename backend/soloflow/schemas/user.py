from datetime import datetime

from pydantic import EmailStr

from soloflow.schemas.common import IDModel, Timestamped


class UserRead(IDModel, Timestamped):
    email: EmailStr
    full_name: str
    currency: str
    is_active: bool
    is_admin: bool
    last_login_at: datetime | None
