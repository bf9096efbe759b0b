import base64
import os

from langchain_community.document_loaders import PyPDFLoader, TextLoader

from semiologix.config import logger, ACCEPTED_EXTENSIONS as AC
from semiologix.errors import EmptyDocumentError, UnsupportedFileError


def file_extension(file_path: str) -> str:
    return os.path.splitext(file_path)[1].lstrip(".").lower()


def check_extension(file_path: str) -> str:
    """Raise UnsupportedFileError unless the file can be read as text."""
    extension = file_extension(file_path)
    if extension not in AC:
        raise UnsupportedFileError("Formato de arquivo não suportado. Use .txt ou .pdf.")
    return extension


def extract_text(file_path: str) -> str:
    """
    Extract the plain text of an uploaded anamnesis or exam report.

    Args:
        file_path: Path to a .pdf or .txt file

    Returns:
        Text of every page, joined by newlines
    """
    extension = check_extension(file_path)
    if extension == "pdf":
        loader = PyPDFLoader(file_path)
    else:
        loader = TextLoader(file_path, encoding="utf-8")

    documents = loader.load()
    text = "\n".join(doc.page_content for doc in documents).strip()
    logger.info(f"Loaded {len(documents)} pages/documents from {os.path.basename(file_path)}")
    if not text:
        raise EmptyDocumentError("Não foi possível extrair texto do arquivo.")
    return text


def is_audio_mime(mime_type: str | None) -> bool:
    return bool(mime_type) and mime_type.startswith("audio/")


def encode_audio(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
