from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class Notice:
    message: str
    kind: str = "error"
    notice_class: Optional[str] = None


@dataclass
class NoticeList:
    """User-facing notices for one checkout attempt.

    Adding a notice with a ``notice_class`` replaces any earlier notice of that class.
    """

    notices: List[Notice] = field(default_factory=list)

    def add(self, message: str, kind: str = "error", notice_class: Optional[str] = None) -> Notice:
        if notice_class is not None:
            self.clear(notice_class=notice_class)
        notice = Notice(message=message, kind=kind, notice_class=notice_class)
        self.notices.append(notice)
        return notice

    def clear(self, kind: Optional[str] = None, notice_class: Optional[str] = None) -> None:
        self.notices = [
            notice
            for notice in self.notices
            if not (
                (kind is None or notice.kind == kind)
                and (notice_class is None or notice.notice_class == notice_class)
            )
        ]

    def count(self, kind: Optional[str] = None) -> int:
        return sum(1 for notice in self.notices if kind is None or notice.kind == kind)

    def messages(self, kind: Optional[str] = None) -> List[str]:
        return [notice.message for notice in self.notices if kind is None or notice.kind == kind]
