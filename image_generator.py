# image_generator.py

import base64
import json
import logging
import os

from google import genai
from google.genai import types as genai_types

from errors import GenerationError, ValidationError
from game_creator import validate_differences
from storage_handler import decode_image_payload

SCENE_MODEL = 'imagen-4.0-generate-001'
PLANNER_MODEL = 'gemini-2.5-flash'
EDITOR_MODEL = 'gemini-2.5-flash-image-preview'

MIN_DIFFERENCES = 3
MAX_DIFFERENCES = 10

SCENE_PROMPT_TEMPLATE = "Photorealistic, high-detail image of: {prompt}. Cinematic lighting, vibrant colors."

PLANNER_PROMPT_TEMPLATE = """You are a creative game designer for a "spot the difference" game.
Based on the user's requested scene, "{prompt}", come up with exactly {count} subtle but findable differences.
The differences should be a mix of: removing an object, adding a plausible object, changing an object's color or style, or moving an object slightly.
Describe each difference as a concise, imperative instruction for an AI photo editor.

Example for scene "a cat sleeping on a bookshelf":
[
    "Remove the book with the red cover.",
    "Add a small potted cactus to the top shelf.",
    "Change the cat's collar color to blue.",
    "Make the window in the background slightly larger.",
    "Remove one of the cat's whiskers."
]

Return ONLY a valid JSON array of {count} strings."""

EDITOR_PROMPT_TEMPLATE = """You are an expert, subtle photo editor.
Your task is to edit the provided image according to a precise list of instructions to create a "spot the difference" game.

There are exactly {count} instructions. You must apply all of them, and only them.

Editing Instructions:
{instructions}

Editing Guidelines:
- Apply ONLY the changes listed above. Do not add, remove, or alter anything else.
- The edits must be photorealistic and blend seamlessly into the image.
- The rest of the image (outside the immediate edit areas) must remain IDENTICAL to the original.

Output: Return ONLY the final edited image. Do not return any text."""


def _client(api_key: str = None):
    api_key = api_key or os.getenv('GEMINI_API_KEY')
    if not api_key:
        raise GenerationError("API key not found. Please set GEMINI_API_KEY in your environment variables.")
    return genai.Client(api_key=api_key)


def _to_data_url(data: bytes, mime_type: str = 'image/png') -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('utf-8')}"


def _generation_failure(context: str, error: Exception) -> GenerationError:
    message = str(error)
    if 'quota' in message.lower() or 'limit' in message.lower():
        return GenerationError("API quota exceeded. Please check your Gemini API usage limits and try again later.")
    if 'PERMISSION_DENIED' in message:
        return GenerationError("API permission denied. Please check that your API key can be used for image generation.")
    return GenerationError(f"Failed to {context}: {message}")


def handle_image_response(response, context: str) -> str:
    """
    Pulls the first inline image out of a generate_content response as a data URL.
    Raises GenerationError describing why no image came back.
    """
    feedback = getattr(response, 'prompt_feedback', None)
    block_reason = getattr(feedback, 'block_reason', None) if feedback else None
    if block_reason:
        block_message = getattr(feedback, 'block_reason_message', None) or ''
        message = f"Request was blocked. Reason: {block_reason}. {block_message}".strip()
        logging.error(message)
        raise GenerationError(message)

    candidates = getattr(response, 'candidates', None) or []
    candidate = candidates[0] if candidates else None
    content = getattr(candidate, 'content', None) if candidate else None
    for part in (getattr(content, 'parts', None) or []):
        inline_data = getattr(part, 'inline_data', None)
        if inline_data is not None and inline_data.data:
            logging.info(f"Received image data ({inline_data.mime_type}) for {context}")
            return _to_data_url(inline_data.data, inline_data.mime_type)

    finish_reason = getattr(candidate, 'finish_reason', None) if candidate else None
    finish_name = getattr(finish_reason, 'name', finish_reason)
    if finish_name and finish_name != 'STOP':
        message = (f"Image generation for {context} stopped unexpectedly. Reason: {finish_name}. "
                   "This often relates to safety settings.")
        logging.error(message)
        raise GenerationError(message)

    text_feedback = (getattr(response, 'text', None) or '').strip()
    if text_feedback:
        message = f'The AI model did not return an image for the {context}. The model responded with text: "{text_feedback}"'
    else:
        message = (f"The AI model did not return an image for the {context}. "
                   "This can happen due to safety filters or if the request is too complex.")
    logging.error(message)
    raise GenerationError(message)


def generate_initial_image(prompt: str, api_key: str = None) -> str:
    """Generates the original scene from the player's description. Returns a PNG data URL."""
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationError("Prompt is required")
    try:
        client = _client(api_key)
        logging.warning(f"Generating initial image with prompt: {prompt}")
        response = client.models.generate_images(
            model=SCENE_MODEL,
            prompt=SCENE_PROMPT_TEMPLATE.format(prompt=prompt.strip()),
            config=genai_types.GenerateImagesConfig(
                number_of_images=1,
                output_mime_type='image/png',
                aspect_ratio='1:1',
            ),
        )
        generated = response.generated_images or []
        if not generated or not generated[0].image or not generated[0].image.image_bytes:
            raise GenerationError("Image generation failed to produce an image.")
        return _to_data_url(generated[0].image.image_bytes)
    except GenerationError:
        raise
    except Exception as e:
        logging.error(f"Error in generate_initial_image for prompt '{prompt}': {e}")
        raise _generation_failure("generate initial image", e) from e


def parse_differences(response_text: str, count: int) -> list:
    """Validates the planner's JSON answer: exactly `count` non-empty strings."""
    try:
        differences = json.loads((response_text or '').strip())
    except json.JSONDecodeError:
        raise GenerationError("The AI failed to generate a valid list of differences. Please try a different prompt.")

    if (not isinstance(differences, list)
            or len(differences) != count
            or not all(isinstance(d, str) and d.strip() for d in differences)):
        raise GenerationError("The AI failed to generate a valid list of differences. Please try a different prompt.")
    return [d.strip() for d in differences]


def plan_differences(prompt: str, count: int, api_key: str = None) -> list:
    """Asks Gemini for `count` edit instructions for the scene, as a JSON array."""
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationError("Prompt is required")
    if not isinstance(count, int) or isinstance(count, bool) or not MIN_DIFFERENCES <= count <= MAX_DIFFERENCES:
        raise ValidationError(f"Number of differences must be between {MIN_DIFFERENCES} and {MAX_DIFFERENCES}")

    try:
        client = _client(api_key)
        logging.warning(f"Planning {count} differences for prompt: {prompt}")
        response = client.models.generate_content(
            model=PLANNER_MODEL,
            contents=PLANNER_PROMPT_TEMPLATE.format(prompt=prompt.strip(), count=count),
            config=genai_types.GenerateContentConfig(response_mime_type="application/json"),
        )
        return parse_differences(response.text, count)
    except GenerationError:
        raise
    except Exception as e:
        logging.error(f"Error in plan_differences for prompt '{prompt}': {e}")
        raise _generation_failure("plan differences", e) from e


def generate_modified_image(original_image, differences: list, api_key: str = None) -> str:
    """Applies the planned differences to the original scene. Returns a data URL."""
    differences = validate_differences(differences)
    image_bytes, mime_type = decode_image_payload(original_image)

    try:
        client = _client(api_key)
        logging.warning(f"Generating modified image with {len(differences)} differences")
        prompt = EDITOR_PROMPT_TEMPLATE.format(
            count=len(differences),
            instructions='\n'.join(f"- {d}" for d in differences),
        )
        response = client.models.generate_content(
            model=EDITOR_MODEL,
            contents=[genai_types.Part.from_bytes(data=image_bytes, mime_type=mime_type), prompt],
            config=genai_types.GenerateContentConfig(response_modalities=['IMAGE', 'TEXT']),
        )
        return handle_image_response(response, 'modification')
    except GenerationError:
        raise
    except Exception as e:
        logging.error(f"Error in generate_modified_image: {e}")
        raise _generation_failure("generate modified image", e) from e
