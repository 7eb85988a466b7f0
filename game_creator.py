# game_creator.py

import logging
from concurrent.futures import ThreadPoolExecutor

from firebase_admin import firestore

from errors import ValidationError
from quota_handler import reserve_game_quota
from storage_handler import decode_image_payload, game_image_path, upload_image


def difficulty_range(difference_count: int) -> str:
    """Buckets a difference count into the label players guess against."""
    if difference_count >= 9:
        return '9+'
    if difference_count >= 6:
        return '6-8'
    return '3-5'


def validate_differences(differences) -> list:
    if not isinstance(differences, list) or not differences:
        raise ValidationError("At least one difference is required")
    cleaned = []
    for difference in differences:
        if not isinstance(difference, str) or not difference.strip():
            raise ValidationError("Differences must be non-empty strings")
        cleaned.append(difference.strip())
    return cleaned


def create_game_round(db, bucket, creator_id: str, creator_name: str, prompt: str,
                      original_image, modified_image, differences: list, is_public: bool = True) -> str:
    """
    Reserves quota, uploads both images and stores the new game round.

    Quota is committed before anything else happens. If an upload or the final
    write fails afterwards, the reservation is not handed back.
    """
    if not isinstance(creator_id, str) or not creator_id.strip():
        raise ValidationError("User ID is required")
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationError("Prompt is required")
    if not isinstance(is_public, bool):
        raise ValidationError("isPublic must be a boolean")
    differences = validate_differences(differences)
    original_bytes, original_mime = decode_image_payload(original_image)
    modified_bytes, modified_mime = decode_image_payload(modified_image)

    quota = reserve_game_quota(db, creator_id)
    logging.info(f"Quota verified. User games: {quota['userQuota']['used']} / {quota['userQuota']['limit']}")

    game_ref = db.collection('gameRounds').document()
    game_id = game_ref.id

    try:
        with ThreadPoolExecutor(max_workers=2) as executor:
            original_upload = executor.submit(
                upload_image, bucket, original_bytes,
                game_image_path(creator_id, game_id, 'original', original_mime), original_mime)
            modified_upload = executor.submit(
                upload_image, bucket, modified_bytes,
                game_image_path(creator_id, game_id, 'modified', modified_mime), modified_mime)
            original_image_url = original_upload.result()
            modified_image_url = modified_upload.result()

        game_ref.set({
            'creatorId': creator_id,
            'creatorName': creator_name or 'Anonymous',
            'prompt': prompt.strip(),
            'originalImageUrl': original_image_url,
            'modifiedImageUrl': modified_image_url,
            'differences': differences,
            'difficultyRange': difficulty_range(len(differences)),
            'createdAt': firestore.SERVER_TIMESTAMP,
            'playCount': 0,
            'isPublic': is_public,
        })
    except Exception as e:
        logging.error(f"Creating game {game_id} for user {creator_id} failed after quota was reserved: {e}")
        raise

    logging.info(f"Game round created successfully: {game_id}")
    return game_id
