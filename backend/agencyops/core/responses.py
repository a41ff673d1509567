"""
Download responses for generated documents
"""
from io import BytesIO

from fastapi.responses import StreamingResponse

PDF_MEDIA_TYPE = "application/pdf"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def file_response(content: bytes, filename: str, media_type: str = PDF_MEDIA_TYPE,
                  inline: bool = False) -> StreamingResponse:
    disposition = "inline" if inline else "attachment"
    return StreamingResponse(
        BytesIO(content),
        media_type=media_type,
        headers={"Content-Disposition": f'{disposition}; filename="{filename}"'}
    )
