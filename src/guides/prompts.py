"""Instrucciones enviadas al servicio de generación para las guías de clase."""

from typing import Dict, List, Any

GUIDE_SYSTEM_PROMPT = (
    "Eres un experto en pedagogía y diseño curricular. Generas guías de clase "
    "estructuradas, prácticas y adecuadas para la edad de los estudiantes. "
    "Responde únicamente con un objeto JSON válido."
)

GUIDE_JSON_SHAPE = """{
  "objectives": ["objetivo 1", "objetivo 2", "objetivo 3"],
  "structure": [
    {"duration": "10 min", "activity": "Nombre de la actividad", "description": "Qué se hace"}
  ],
  "guiding_questions": ["pregunta 1", "pregunta 2", "pregunta 3", "pregunta 4"]
}"""


def _bullets(items: List[str]) -> str:
    return "\n".join(f"- {item}" for item in items) if items else "- (sin datos)"


def build_guide_prompt(topic: Dict[str, Any], group: Dict[str, Any], class_doc: Dict[str, Any],
                       method_tags: List[str], extra_context: str,
                       recommendations: List[Dict[str, Any]]) -> str:
    """Instrucción de usuario para generar una guía nueva"""
    sections = [
        "Genera una guía de clase completa con la siguiente información:",
        f"TEMA: {topic.get('name', 'Tema sin nombre')}",
        f"DESCRIPCIÓN: {topic.get('description') or 'No especificada'}",
        f"OBJETIVOS DEL TEMA:\n{_bullets(topic.get('objectives') or [])}",
        f"GRADO: {group.get('grade') or 'No especificado'}",
        f"GRUPO DE EDAD: {class_doc.get('age_group') or 'No especificado'}",
        f"DURACIÓN: {class_doc.get('duration_minutes', 45)} minutos",
        f"METODOLOGÍAS: {', '.join(method_tags) if method_tags else 'Libre elección'}",
        f"CONTEXTO ADICIONAL: {extra_context or 'Ninguno'}",
    ]
    if recommendations:
        sections.append(
            "RECOMENDACIONES PENDIENTES DE SESIONES PREVIAS (incorpóralas):\n"
            + "\n".join(f"- {r.get('content') or r.get('description', '')}" for r in recommendations)
        )
    sections.append(
        "Incluye 3-4 objetivos de aprendizaje, una estructura por fases cuya suma de tiempos "
        "sea la duración indicada y 4-6 preguntas socráticas.\n"
        f"Devuelve exactamente este formato JSON:\n{GUIDE_JSON_SHAPE}"
    )
    return "\n\n".join(sections)


def build_rewrite_prompt(content: Dict[str, Any], recommendations: List[Dict[str, Any]],
                         topic: Dict[str, Any]) -> str:
    """Instrucción de usuario para reescribir una guía incorporando recomendaciones"""
    steps = "\n".join(
        f"- [{s.get('duration', '')}] {s.get('activity', '')}: {s.get('description', '')}"
        for s in content.get("structure", [])
    )
    recs = "\n".join(
        f"{i}. {r.get('title', '')}: {r.get('description', '')} (prioridad {r.get('priority', 'media')})"
        for i, r in enumerate(recommendations, start=1)
    )
    return (
        f"Tema: {topic.get('name', 'Tema sin nombre')}\n\n"
        f"GUÍA ACTUAL\nObjetivos:\n{_bullets(content.get('objectives', []))}\n\n"
        f"Estructura:\n{steps or '- (sin datos)'}\n\n"
        f"Preguntas guía:\n{_bullets(content.get('guiding_questions', []))}\n\n"
        f"RECOMENDACIONES A INCORPORAR:\n{recs}\n\n"
        "Reescribe los objetivos, la estructura y las preguntas guía incorporando las "
        "recomendaciones sin perder calidad ni cambiar la duración total.\n"
        f"Devuelve exactamente este formato JSON:\n{GUIDE_JSON_SHAPE}"
    )
