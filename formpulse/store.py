"""Document storage for forms, users and submissions.

``MemoryStore`` keeps everything in process. ``JsonFileStore`` persists forms
and users as JSON documents and appends submissions to a JSONL log, so the
submission history can be streamed without loading it whole.
"""
import json
import logging
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from formpulse.errors import DuplicateUser, FormNotFound, StorageUnavailable
from formpulse.models import Form, Submission, User

logger = logging.getLogger(__name__)


class FormStore:
    """Interface every storage backend implements."""

    def get_form(self, form_id: str) -> Form:
        raise NotImplementedError

    def list_forms(self, owner_id: str) -> List[Form]:
        raise NotImplementedError

    def save_form(self, form: Form) -> None:
        raise NotImplementedError

    def insert_submission(self, submission: Submission) -> None:
        raise NotImplementedError

    def iter_submissions(self, form_id: str) -> Iterator[Submission]:
        raise NotImplementedError

    def insert_user(self, user: User) -> None:
        raise NotImplementedError

    def get_user(self, user_id: str) -> Optional[User]:
        raise NotImplementedError

    def get_user_by_email(self, email: str) -> Optional[User]:
        raise NotImplementedError


class MemoryStore(FormStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._forms: Dict[str, Form] = {}
        self._users: Dict[str, User] = {}
        self._submissions: Dict[str, List[Submission]] = {}

    def get_form(self, form_id: str) -> Form:
        with self._lock:
            form = self._forms.get(form_id)
        if form is None:
            raise FormNotFound(form_id)
        return form.model_copy(deep=True)

    def list_forms(self, owner_id: str) -> List[Form]:
        with self._lock:
            owned = [form for form in self._forms.values() if form.owner_id == owner_id]
        owned.sort(key=lambda form: form.updated_at, reverse=True)
        return [form.model_copy(deep=True) for form in owned]

    def save_form(self, form: Form) -> None:
        with self._lock:
            self._forms[form.id] = form.model_copy(deep=True)

    def insert_submission(self, submission: Submission) -> None:
        with self._lock:
            self._submissions.setdefault(submission.form_id, []).append(submission)

    def iter_submissions(self, form_id: str) -> Iterator[Submission]:
        with self._lock:
            snapshot = list(self._submissions.get(form_id, ()))
        return iter(snapshot)

    def insert_user(self, user: User) -> None:
        email = user.email.lower()
        with self._lock:
            if any(existing.email.lower() == email for existing in self._users.values()):
                raise DuplicateUser(f"User already exists: {user.email}")
            self._users[user.id] = user

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        email = email.lower()
        with self._lock:
            for user in self._users.values():
                if user.email.lower() == email:
                    return user
        return None


class JsonFileStore(MemoryStore):
    FORMS_FILE = "forms.json"
    USERS_FILE = "users.json"
    SUBMISSIONS_FILE = "submissions.jsonl"

    def __init__(self, data_dir: str | Path):
        super().__init__()
        self.data_dir = Path(data_dir)
        self._file_lock = threading.Lock()
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailable(f"cannot create data dir {self.data_dir}: {exc}") from exc
        for record in self._read_document(self.FORMS_FILE):
            form = Form.model_validate(record)
            self._forms[form.id] = form
        for record in self._read_document(self.USERS_FILE):
            user = User.model_validate(record)
            self._users[user.id] = user
        logger.info(
            "Loaded %d forms and %d users from %s", len(self._forms), len(self._users), self.data_dir
        )

    def _read_document(self, name: str) -> List[dict]:
        path = self.data_dir / name
        if not path.exists():
            return []
        try:
            with open(path, "r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, ValueError) as exc:
            raise StorageUnavailable(f"cannot read {path}: {exc}") from exc

    def _write_document(self, name: str, records: List[dict]) -> None:
        path = self.data_dir / name
        temp_path = path.with_suffix(".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as handle:
                json.dump(records, handle, ensure_ascii=False, indent=2)
            temp_path.replace(path)
        except OSError as exc:
            logger.error("Failed to write %s: %s", path, exc)
            raise StorageUnavailable(f"cannot write {path}: {exc}") from exc

    def save_form(self, form: Form) -> None:
        with self._file_lock:
            super().save_form(form)
            with self._lock:
                records = [item.model_dump(mode="json", by_alias=True) for item in self._forms.values()]
            self._write_document(self.FORMS_FILE, records)

    def insert_user(self, user: User) -> None:
        with self._file_lock:
            super().insert_user(user)
            with self._lock:
                records = []
                for item in self._users.values():
                    record = item.model_dump(mode="json", by_alias=True)
                    record["passwordHash"] = item.password_hash
                    records.append(record)
            self._write_document(self.USERS_FILE, records)

    def insert_submission(self, submission: Submission) -> None:
        path = self.data_dir / self.SUBMISSIONS_FILE
        line = json.dumps(submission.model_dump(mode="json", by_alias=True), ensure_ascii=False)
        try:
            with self._file_lock, open(path, "a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError as exc:
            logger.error("Failed to append submission %s: %s", submission.id, exc)
            raise StorageUnavailable(f"cannot append to {path}: {exc}") from exc

    def iter_submissions(self, form_id: str) -> Iterator[Submission]:
        path = self.data_dir / self.SUBMISSIONS_FILE
        if not path.exists():
            return
        try:
            with open(path, "r", encoding="utf-8") as handle:
                for line in handle:
                    if not line.strip():
                        continue
                    record = json.loads(line)
                    if record.get("formId") == form_id:
                        yield Submission.model_validate(record)
        except (OSError, ValueError) as exc:
            logger.error("Failed to read submissions from %s: %s", path, exc)
            raise StorageUnavailable(f"cannot read {path}: {exc}") from exc
