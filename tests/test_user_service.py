from unittest.mock import MagicMock, patch

from app.services import user_service
from app.services.user_service import USER_OWNED_COLLECTIONS


async def test_delete_user_data_keeps_email_history(make_collection):
    owned = {name: make_collection() for name in USER_OWNED_COLLECTIONS}
    owned["automations"].delete_many.return_value = MagicMock(deleted_count=3)
    users = make_collection()

    with patch.object(user_service, "get_collection", side_effect=lambda name: owned[name]), \
         patch.object(user_service, "get_users_collection", return_value=users):
        counts = await user_service.delete_user_data("user-1")

    assert "email_usage_history" not in USER_OWNED_COLLECTIONS
    for collection in owned.values():
        collection.delete_many.assert_awaited_once_with({"user_id": "user-1"})
    users.delete_one.assert_awaited_once_with({"_id": "user-1"})
    assert counts == {"automations": 3, "users": 1}
