# Comment API route: multipart comment with an optional uploaded or fetched file

from fastapi import APIRouter, Depends, File, UploadFile

from busybee.dependencies.auth import (
    get_current_user,
    get_file_storage,
    get_task_store,
    get_url_downloader,
)
from busybee.dependencies.tasks import authorized_comment_fields
from busybee.errors import PersistenceError, TaskAlreadyDone, TaskNotFound, ValidationError
from busybee.models import UserAccount
from busybee.safety.values import Username
from busybee.schemas import CommentFields, CommentResponse
from busybee.services.url_fetcher import UrlImageDownloader
from busybee.storage.files import FileStorage, FileType, StoredUpload
from busybee.storage.tasks import TaskStore
from busybee.utils.logger import setup_logger

logger = setup_logger("api.comments")

router = APIRouter(tags=["Comments"])


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    fh = upload.file
    position = fh.tell()
    fh.seek(0, 2)
    size = fh.tell()
    fh.seek(position)
    return size


@router.post("/comment", response_model=CommentResponse)
def add_comment(
    fields: CommentFields = Depends(authorized_comment_fields),
    file: UploadFile | None = File(None),
    current_user: UserAccount = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
    files: FileStorage = Depends(get_file_storage),
    downloader: UrlImageDownloader = Depends(get_url_downloader),
):
    """
    Add a comment to a task.

    The comment may carry one file, either uploaded in the ``file`` part or
    downloaded from ``imageUrl``. Images are stored as the comment's image,
    anything else as its attachment. A stored file is removed again when
    the comment cannot be recorded.
    """
    file_size = _upload_size(file) if file is not None else 0
    has_file = file is not None and file_size > 0
    image_url = fields.imageUrl if fields.imageUrl and fields.imageUrl.strip() else None
    if has_file and image_url is not None:
        raise ValidationError("request", "file and imageUrl are mutually exclusive")

    task = tasks.find(fields.taskid)
    if task is None:
        raise TaskNotFound(fields.taskid)
    if task.done:
        raise TaskAlreadyDone(fields.taskid)

    stored: StoredUpload | None = None
    if has_file:
        stored = files.store_upload(
            file.file, file.filename, file.content_type, current_user.username, file_size
        )
    elif image_url is not None:
        stored = downloader.download_and_store(image_url, current_user.username)

    image = attachment = None
    if stored is not None:
        if stored.file_type == FileType.IMAGE:
            image = stored.handle
        else:
            attachment = stored.handle

    try:
        commentid = tasks.add_comment(
            fields.taskid,
            fields.text,
            Username(current_user.username),
            image=image,
            attachment=attachment,
            after=fields.commentid,
        )
    except PersistenceError:
        # The comment is recorded in memory, so its file must stay
        raise
    except BaseException:
        if stored is not None:
            files.cleanup_stored_upload(stored.handle)
        raise
    return CommentResponse(commentid=commentid)
