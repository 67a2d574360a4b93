"""Memoized remote identities."""

from focusguard.utils import content_key


class IdentityCache:
    """Remembers ids already registered remotely.

    Keys:
        websites: domain -> website id
        website_users: (user id, domain) -> (website-user id, category id)
        contents: normalized (title, description) -> content id
    """

    def __init__(self) -> None:
        self.websites: dict[str, int] = {}
        self.website_users: dict[tuple[int, str], tuple[int, int]] = {}
        self.contents: dict[tuple[str, str], int] = {}

    def get_website(self, domain: str) -> int | None:
        return self.websites.get(domain)

    def set_website(self, domain: str, website_id: int) -> None:
        self.websites[domain] = website_id

    def get_website_user(self, user_id: int, domain: str) -> tuple[int, int] | None:
        return self.website_users.get((user_id, domain))

    def set_website_user(
        self, user_id: int, domain: str, website_user_id: int, category_id: int
    ) -> None:
        self.website_users[(user_id, domain)] = (website_user_id, category_id)

    def get_content(self, title: str, description: str) -> int | None:
        return self.contents.get(content_key(title, description))

    def set_content(self, title: str, description: str, content_id: int) -> None:
        self.contents[content_key(title, description)] = content_id

    def clear(self) -> None:
        """Forget every cached identity."""
        self.websites.clear()
        self.website_users.clear()
        self.contents.clear()
