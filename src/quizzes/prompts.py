"""Instrucciones enviadas al servicio de generación para las evaluaciones."""

from typing import Dict, Any, List, Optional

QUIZ_SYSTEM_PROMPT = (
    "Eres un especialista en evaluación educativa. Diseñas preguntas claras, "
    "sin ambigüedades y adecuadas al nivel de los estudiantes. "
    "Responde únicamente con un objeto JSON válido."
)

QUESTION_JSON_SHAPE = """{
  "prompt": "enunciado",
  "question_type": "multiple_choice | open_response",
  "cognitive_level": "recordar | comprender | aplicar | analizar",
  "options": ["opción A", "opción B", "opción C", "opción D"],
  "correct_index": 0,
  "expected_answer": "solo para open_response",
  "feedback": "justificación de la respuesta correcta"
}"""

# Perfil de cada tipo de evaluación
KIND_PROFILES = {
    "pre": {
        "title": "Evaluación diagnóstica",
        "question_count": 3,
        "time_limit": 5,
        "requires_reading": True,
        "temperature": 0.65,
        "max_tokens": 1600,
        "focus": (
            "Evaluación diagnóstica breve. Escribe primero una lectura teórica de 150 a 250 palabras "
            "sobre los conceptos centrales de la clase y luego preguntas de recuerdo y comprensión "
            "que se respondan con esa lectura. Todas de opción múltiple con 4 opciones."
        ),
        "instructions": "Lee el texto con atención y responde las preguntas.",
    },
    "post": {
        "title": "Evaluación final",
        "question_count": 10,
        "time_limit": 15,
        "requires_reading": False,
        "temperature": 0.65,
        "max_tokens": 4000,
        "focus": (
            "Evaluación final de análisis y aplicación. Sin lectura previa. Combina preguntas de "
            "opción múltiple (4 opciones) con algunas de respuesta abierta, todas orientadas a "
            "aplicar y analizar lo trabajado en clase."
        ),
        "instructions": "Responde todas las preguntas. Justifica tus respuestas abiertas.",
    },
}


def build_guide_context(version: Optional[Dict[str, Any]]) -> str:
    """Resumen de la guía actual: objetivos, primeras cuatro fases y tres preguntas guía"""
    if not version:
        return "No hay guía disponible para esta clase."
    lines = ["Objetivos:"]
    lines += [f"- {o}" for o in (version.get("objectives") or [])] or ["- (sin objetivos)"]
    lines.append("Estructura:")
    for step in (version.get("structure") or [])[:4]:
        lines.append(f"- {step.get('activity', '')}: {step.get('description', '')}")
    questions = (version.get("guiding_questions") or [])[:3]
    if questions:
        lines.append("Preguntas guía:")
        lines += [f"- {q}" for q in questions]
    return "\n".join(lines)


def build_quiz_prompt(kind: str, topic: Dict[str, Any], version: Optional[Dict[str, Any]],
                      class_doc: Dict[str, Any], count: Optional[int] = None,
                      reading: Optional[str] = None) -> str:
    profile = KIND_PROFILES[kind]
    count = count or profile["question_count"]
    shape_reading = '"reading": "texto de 150 a 250 palabras",\n  ' if profile["requires_reading"] and reading is None else ""
    parts = [
        f"Tema: {topic.get('name', 'Tema sin nombre')}",
        f"Grupo de edad: {class_doc.get('age_group') or 'No especificado'}",
        f"Guía de la clase:\n{build_guide_context(version)}",
        profile["focus"],
        f"Genera exactamente {count} preguntas.",
    ]
    if reading:
        parts.append(f"Usa esta lectura como contexto de todas las preguntas:\n{reading}")
    parts.append(
        "Devuelve exactamente este formato JSON:\n"
        "{\n  " + shape_reading + '"questions": [' + QUESTION_JSON_SHAPE + "]\n}"
    )
    return "\n\n".join(parts)


def build_modify_question_prompt(question: Dict[str, Any], action: str, difficulty: Optional[str],
                                 topic: Dict[str, Any], reading: str) -> str:
    options = "\n".join(f"- {o.get('label', '')}" for o in question.get("options") or [])
    if action == "swap":
        task = ("Reemplaza por completo esta pregunta por otra distinta sobre el mismo tema "
                "y con el mismo propósito de aprendizaje.")
    else:
        direction = "más fácil" if difficulty == "easier" else "más difícil"
        task = (f"Reescribe esta pregunta para que sea {direction}, conservando el propósito "
                "de aprendizaje. Regenera todas las opciones.")
    return (
        f"Tema: {topic.get('name', 'Tema sin nombre')}\n\n"
        f"Lectura de contexto:\n{reading or '(sin lectura)'}\n\n"
        f"Pregunta actual ({question.get('question_type')}):\n{question.get('prompt', '')}\n{options}\n\n"
        f"{task}\n"
        "Si es de opción múltiple debe tener exactamente 4 opciones.\n"
        f"Devuelve exactamente este formato JSON:\n{QUESTION_JSON_SHAPE}"
    )


READING_SYSTEM_PROMPT = (
    "Eres un redactor de textos educativos. Escribes núcleos teóricos claros y precisos "
    "para estudiantes. Responde solo con el texto, sin títulos ni formato adicional."
)


def build_refine_reading_prompt(topic: Dict[str, Any], current_text: str, intent: str,
                                instruction: Optional[str]) -> str:
    if intent == "custom" and instruction:
        task = f"Modifica el texto siguiendo esta indicación del profesor: {instruction}"
    else:
        task = "Escribe una versión nueva del texto, distinta de la actual, sobre los mismos conceptos."
    return (
        f"Tema: {topic.get('name', 'Tema sin nombre')}\n\n"
        f"Texto actual:\n{current_text or '(vacío)'}\n\n"
        f"{task}\nEl resultado debe tener entre 150 y 250 palabras."
    )


CONCEPTS_SYSTEM_PROMPT = (
    "Eres un especialista en análisis curricular. Identificas el concepto principal que "
    "evalúa cada pregunta. Responde únicamente con un objeto JSON válido."
)


def build_concepts_prompt(topic: Dict[str, Any], questions: List[Dict[str, Any]]) -> str:
    listing = "\n".join(f"- id: {q['_id']} | {q.get('prompt', '')}" for q in questions)
    return (
        f"Tema: {topic.get('name', 'Tema sin nombre')}\n\n"
        f"Preguntas:\n{listing}\n\n"
        "Para cada pregunta indica el concepto principal que evalúa, en máximo 4 palabras.\n"
        'Devuelve exactamente este formato JSON:\n{"concepts": [{"question_id": "id", "concept": "concepto"}]}'
    )
