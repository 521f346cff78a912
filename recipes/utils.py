import re
import secrets
import string

from django.utils.text import slugify
from unidecode import unidecode

SLUG_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
SLUG_SUFFIX_LENGTH = 6

LEADING_QUANTITY_RE = re.compile(r'^\d+[\s,]*')
PARENTHESES_RE = re.compile(r'\([^)]*\)')
# Tashkeel (fathatan .. sukun, superscript alef) et tatweel
ARABIC_DIACRITICS_RE = re.compile(r"[\u064B-\u0652\u0670\u0640]")


def slugify_text(value):
    """Slug ASCII : les noms arabes sont translittérés avant slugify"""
    return slugify(unidecode(value or ''))


def random_suffix(length=SLUG_SUFFIX_LENGTH):
    return ''.join(secrets.choice(SLUG_SUFFIX_ALPHABET) for _ in range(length))


def generate_random_slug(model, value, fallback='item', exclude_pk=None):
    """
    Slug = nom slugifié + '-' + 6 caractères aléatoires.
    On retire un nouveau suffixe tant qu'une ligne porte déjà ce slug.
    """
    base = slugify_text(value)[:200] or fallback
    queryset = model._default_manager.all()
    if exclude_pk is not None:
        queryset = queryset.exclude(pk=exclude_pk)
    while True:
        candidate = f"{base}-{random_suffix()}"
        if not queryset.filter(slug=candidate).exists():
            return candidate


def generate_unique_slug(model, value, fallback='item', exclude_pk=None):
    """Slug lisible, suffixé -2, -3... en cas de collision (tags, villes)"""
    base = slugify_text(value)[:200] or fallback
    queryset = model._default_manager.all()
    if exclude_pk is not None:
        queryset = queryset.exclude(pk=exclude_pk)
    candidate = base
    counter = 2
    while queryset.filter(slug=candidate).exists():
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate


def normalize_ingredient_name(name):
    """
    Normalise le nom d'un ingrédient pour la comparaison textuelle
    - Suppression d'une quantité en tête ("2 بصل" -> "بصل")
    - Suppression des précisions entre parenthèses
    - Suppression des signes diacritiques arabes et du tatweel
    - Suppression des espaces multiples, minuscules
    """
    if not name:
        return ''
    normalized = LEADING_QUANTITY_RE.sub('', name.strip())
    normalized = PARENTHESES_RE.sub('', normalized)
    normalized = ARABIC_DIACRITICS_RE.sub('', normalized)
    normalized = ' '.join(normalized.split())
    return normalized.lower()


def parse_id_list(raw):
    """'1, 2,x,3' -> [1, 2, 3]"""
    if not raw:
        return []
    if isinstance(raw, (list, tuple)):
        values = raw
    else:
        values = str(raw).split(',')
    ids = []
    for value in values:
        try:
            ids.append(int(str(value).strip()))
        except (TypeError, ValueError):
            continue
    return ids
