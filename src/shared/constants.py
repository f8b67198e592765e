# Configuración de la aplicación
APP_NAME = "clase-workflow-backend"
APP_PREFIX = "/api"

# Tipos de evaluación de una clase
QUIZ_KINDS = {
    "PRE": "pre",
    "POST": "post"
}

# Estados de una evaluación
QUIZ_STATES = {
    "DRAFT": "draft",
    "APPROVED": "approved",
    "PUBLISHED": "published",
    "CLOSED": "closed"
}

# Tipos de pregunta
QUESTION_TYPES = {
    "MULTIPLE_CHOICE": "multiple_choice",
    "OPEN_RESPONSE": "open_response"
}

MIN_MULTIPLE_CHOICE_OPTIONS = 4

# Estados de una respuesta de estudiante
RESPONSE_STATES = {
    "IN_PROGRESS": "in_progress",
    "COMPLETED": "completed"
}

# Estados de una versión de guía
GUIDE_VERSION_STATES = {
    "DRAFT": "draft",
    "APPROVED": "approved",
    "FINAL": "final"
}

# Origen de una recomendación
RECOMMENDATION_SOURCES = {
    "PRE_QUIZ": "pre_quiz",
    "PREVIOUS_CLASS": "previous_class"
}

RECOMMENDATION_PRIORITIES = ["alta", "media", "baja"]
RECOMMENDATION_AREAS = ["contenido", "metodologia", "estructura", "objetivos"]

# Audiencias de retroalimentación
FEEDBACK_AUDIENCES = {
    "STUDENT": "student",
    "TEACHER_INDIVIDUAL": "teacher_individual",
    "TEACHER_GROUP": "teacher_group",
    "GUARDIAN": "guardian"
}

# Acciones sobre una pregunta individual
QUESTION_ACTIONS = {
    "SWAP": "swap",
    "ADJUST_DIFFICULTY": "adjust_difficulty"
}

DIFFICULTY_DIRECTIONS = ["easier", "harder"]

# Intenciones al refinar la lectura de la evaluación diagnóstica
REFINE_INTENTS = ["regenerate", "custom"]

UNIDENTIFIED_CONCEPT = "Concepto no identificado"
