# Media API routes: stored images and attachments of viewable tasks

from pathlib import PurePosixPath

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from busybee.dependencies.auth import get_file_storage
from busybee.dependencies.tasks import authorized_attachment, authorized_image
from busybee.storage.files import FileStorage

router = APIRouter(tags=["Media"])

NOSNIFF = {"X-Content-Type-Options": "nosniff"}


@router.get("/image")
def get_image(
    file: str = Depends(authorized_image),
    files: FileStorage = Depends(get_file_storage),
):
    content = files.get_bytes(file)
    return Response(content, media_type=files.probe_content_type(file), headers=NOSNIFF)


@router.get("/attachment")
def get_attachment(
    file: str = Depends(authorized_attachment),
    files: FileStorage = Depends(get_file_storage),
):
    content = files.get_bytes(file)
    filename = PurePosixPath(file).name
    headers = {**NOSNIFF, "Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content, media_type=files.probe_content_type(file), headers=headers)
