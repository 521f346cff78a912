import logging

from celery import shared_task

from .models import Recipe
from .services.images import ImageDownloadError, download_image

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=2, default_retry_delay=30)
def fetch_recipe_image(self, recipe_id: int, image_url: str):
    """
    Tâche Celery : télécharge l'image d'une recette importée
    et enregistre son chemin sur la recette.
    """
    try:
        recipe = Recipe.objects.get(id=recipe_id)
    except Recipe.DoesNotExist:
        logger.error("[RecipeImageTask] Recipe %s not found", recipe_id)
        return None

    if recipe.image_path:
        logger.info("[RecipeImageTask] Recipe %s already has an image", recipe_id)
        return recipe.image_path

    try:
        image_path = download_image(image_url)
    except ImageDownloadError as exc:
        logger.warning("[RecipeImageTask] Image for recipe %s failed: %s", recipe_id, exc)
        if self.request.called_directly or self.request.is_eager:
            return None
        raise self.retry(exc=exc)

    recipe.image_path = image_path
    recipe.save(update_fields=['image_path', 'updated_at'])
    logger.info("[RecipeImageTask] Recipe %s image stored at %s", recipe_id, image_path)
    return image_path
