"""
Status events emitted by the engine for the presentation layer.

The engine only emits (key, type, params) triples. Rendering them into text
uses the translation table below; every event is also written to the log.
"""

import logging
from collections import namedtuple

logger = logging.getLogger(__name__)

StatusEvent = namedtuple("StatusEvent", ["key", "type", "params"])

STATUS_TYPES = ("default", "success", "warning", "error")

LANGUAGES = {
    "en": "English",
    "pt": "Português",
}

TRANSLATIONS = {
    "en": {
        "colors_found": "{count} available colors found",
        "no_colors": "No available colors found. Open the color palette on the site and try again!",
        "image_loaded": "Image loaded: {width}x{height}, {total} pixels to paint",
        "image_replaced": "Image replaced: {width}x{height}, {total} pixels to paint",
        "select_position": "Waiting for you to paint the reference pixel...",
        "position_set": "Position captured in region {region_x}/{region_y} at ({x}, {y})",
        "position_timeout": "Time expired to select position",
        "start_painting": "Starting painting in region {region_x}/{region_y}...",
        "resuming": "Resuming at ({x}, {y})",
        "progress": "Progress: {painted}/{total} pixels, {charges} charges",
        "paint_failed": "Failed to paint ({x}, {y}), retrying",
        "paint_loop_error": "Error in paint loop, retrying",
        "painting_stopped": "Painting stopped by user",
        "painting_complete": "Painting completed! {painted} pixels painted.",
        "no_charges": "No charges. Waiting {seconds}s...",
        "token_captured": "Token captured!",
        "token_expired": "Token expired. Trying auto-refresh...",
        "waiting_charges": "Waiting for at least {minimum} charges for auto-refresh...",
        "selecting_neutral": "Selecting transparent...",
        "confirming_paint": "Confirming paint...",
        "waiting_token": "Waiting for token capture...",
        "manual_action_required": "Manual action required: {reason}",
        "auto_recovery_disabled": "Auto-refresh disabled. Please click the Paint button manually.",
        "token_not_captured": "Token not captured. Please paint a pixel manually.",
        "precondition": "Cannot start: {reason}",
        "missing_image": "load an image first",
        "missing_palette": "no palette colors available",
        "missing_anchor": "select a position first",
    },
    "pt": {
        "colors_found": "{count} cores disponíveis encontradas",
        "no_colors": "Nenhuma cor disponível encontrada. Abra a paleta de cores no site e tente novamente!",
        "image_loaded": "Imagem carregada: {width}x{height}, {total} pixels para pintar",
        "image_replaced": "Imagem substituída: {width}x{height}, {total} pixels para pintar",
        "select_position": "Aguardando você pintar o pixel de referência...",
        "position_set": "Posição capturada na região {region_x}/{region_y} em ({x}, {y})",
        "position_timeout": "Tempo esgotado para selecionar posição",
        "start_painting": "Iniciando pintura na região {region_x}/{region_y}...",
        "resuming": "Retomando em ({x}, {y})",
        "progress": "Progresso: {painted}/{total} pixels, {charges} cargas",
        "paint_failed": "Falha ao pintar ({x}, {y}), tentando novamente",
        "paint_loop_error": "Erro no loop de pintura, tentando novamente",
        "painting_stopped": "Pintura interrompida pelo usuário",
        "painting_complete": "Pintura concluída! {painted} pixels pintados.",
        "no_charges": "Sem cargas. Aguardando {seconds}s...",
        "token_captured": "Token capturado!",
        "token_expired": "Token expirado. Tentando auto-refresh...",
        "waiting_charges": "Aguardando pelo menos {minimum} cargas para auto-refresh...",
        "selecting_neutral": "Selecionando transparente...",
        "confirming_paint": "Confirmando pintura...",
        "waiting_token": "Aguardando captura do token...",
        "manual_action_required": "Ação manual necessária: {reason}",
        "auto_recovery_disabled": "Auto-refresh desativado. Por favor, clique no botão Pintura manualmente.",
        "token_not_captured": "Token não capturado. Por favor, pinte um pixel manualmente.",
        "precondition": "Não é possível iniciar: {reason}",
        "missing_image": "carregue uma imagem primeiro",
        "missing_palette": "nenhuma cor da paleta disponível",
        "missing_anchor": "selecione uma posição primeiro",
    },
}

# Parameters whose values are themselves translation keys
TRANSLATED_PARAMS = ("reason",)

_LOG_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
}


class StatusReporter:
    """Fans status events out to listeners and the log"""

    def __init__(self, language="en"):
        self.language = language if language in TRANSLATIONS else "en"
        self.listeners = []
        self.last_event = None

    def add_listener(self, callback):
        self.listeners.append(callback)

    def format(self, event):
        """Render an event in the configured language"""
        table = TRANSLATIONS[self.language]
        params = dict(event.params)
        for name in TRANSLATED_PARAMS:
            if name in params:
                params[name] = table.get(params[name], params[name])
        template = table.get(event.key) or TRANSLATIONS["en"].get(event.key, event.key)
        try:
            return template.format(**params)
        except (KeyError, IndexError):
            return template

    def emit(self, key, type="default", **params):
        if type not in STATUS_TYPES:
            type = "default"
        event = StatusEvent(key, type, params)
        self.last_event = event
        logger.log(_LOG_LEVELS.get(type, logging.INFO), self.format(event))
        for listener in list(self.listeners):
            listener(event)
        return event
