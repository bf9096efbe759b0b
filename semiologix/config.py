import os
import logging

from dotenv import load_dotenv
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_ollama import ChatOllama

load_dotenv()

############### CONFIG FLAGS ############
LOCAL_LLMS = os.getenv("LOCAL_LLMS", "false").lower() == "true"  # Use Ollama instead of Gemini
GEMINI_MODEL = os.getenv("SEMIOLOGIX_MODEL", "gemini-2.5-flash")
OLLAMA_MODEL = os.getenv("SEMIOLOGIX_OLLAMA_MODEL", "qwen3:4b")
DATA_FILE = os.getenv("SEMIOLOGIX_DATA_FILE", "data/semiologix.json")  # Saved cases + API key
LOG_FILE = os.getenv("SEMIOLOGIX_LOG_FILE")  # None logs to stderr
UPLOAD_DIR = os.getenv("SEMIOLOGIX_UPLOAD_DIR", "./tmp")
MAX_RETRIES = 4  # Retries on rate limit errors
INITIAL_RETRY_DELAY = 1.5  # Seconds, doubled on every retry
RETRY_JITTER = 1.0  # Seconds of random jitter added to each delay
PROBABLE_THRESHOLD = 10  # Probability above which a diagnosis is "probable"
MIN_ANALYSIS_TEXT = 20  # Minimum chars of chief complaint + HPI before analysing
MIN_TIMELINE_TEXT = 10  # HPI shorter than this skips timeline extraction
#########################################
logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(levelname)s - %(message)s',
                    filename=LOG_FILE,
                    filemode='a')
logger = logging.getLogger("semiologix")
ACCEPTED_EXTENSIONS = [
    "pdf",
    "txt",
]


def get_model(temperature: float = 0.2, api_key: str | None = None, json_mode: bool = False,
              tools: list | None = None, **kwargs):
    """
    Build a chat model for one call.

    Models are built per call because the API key may only be known at runtime
    (saved credential). Retries are disabled here since rate limits are handled
    by semiologix.retry.

    Args:
        temperature: Sampling temperature
        api_key: Gemini API key, falls back to GOOGLE_API_KEY
        json_mode: Ask Gemini for an application/json response
        tools: Native Gemini tools to bind (e.g. google_search)

    Returns:
        A LangChain chat model (or runnable with tools bound)
    """
    if LOCAL_LLMS:
        # Ollama LLM
        return ChatOllama(
            model=OLLAMA_MODEL,
            temperature=temperature,
            format="json" if json_mode else "",
        )

    model = ChatGoogleGenerativeAI(
        model=GEMINI_MODEL,
        temperature=temperature,
        google_api_key=api_key or os.getenv("GOOGLE_API_KEY"),
        response_mime_type="application/json" if json_mode else None,
        timeout=None,
        max_retries=0,
        **kwargs,
    )
    if tools:
        return model.bind_tools(tools)
    return model
