from typing import Dict, Any, Optional

REMEDIATION_SYSTEM_PROMPT = (
    "Eres un asesor pedagógico. Analizas los resultados de evaluaciones diagnósticas y "
    "propones ajustes concretos a la guía de clase. Responde únicamente con un objeto JSON válido."
)

REMEDIATION_JSON_SHAPE = """{
  "recommendations": [
    {"title": "título breve", "description": "qué cambiar y cómo",
     "priority": "alta | media | baja", "area": "contenido | metodologia | estructura | objetivos"}
  ],
  "summary": "resumen del análisis en 2-3 oraciones"
}"""


def build_remediation_prompt(topic: Dict[str, Any], version: Optional[Dict[str, Any]],
                             stats: Dict[str, Any]) -> str:
    version = version or {}
    objectives = "\n".join(f"- {o}" for o in version.get("objectives") or []) or "- (sin objetivos)"
    structure = "\n".join(
        f"- [{s.get('duration', '')}] {s.get('activity', '')}: {s.get('description', '')}"
        for s in version.get("structure") or []
    ) or "- (sin estructura)"
    per_question = "\n".join(
        f"- Pregunta {q['order']}: {q['prompt']} -> {q['correct']}/{q['total']} aciertos ({q['percentage']}%)"
        for q in stats.get("per_question", [])
    )
    return (
        f"Tema: {topic.get('name', 'Tema sin nombre')}\n\n"
        f"Objetivos de la guía:\n{objectives}\n\n"
        f"Estructura de la guía:\n{structure}\n\n"
        f"Resultados de la evaluación diagnóstica:\n"
        f"- Respuestas completadas: {stats.get('total_responses', 0)}\n"
        f"- Respuestas con todas las preguntas correctas: {stats.get('fully_correct', 0)}\n"
        f"- Precisión global: {stats.get('accuracy', 0)}%\n"
        f"{per_question}\n\n"
        "Propón entre 2 y 5 recomendaciones para reforzar los conceptos con menor desempeño.\n"
        f"Devuelve exactamente este formato JSON:\n{REMEDIATION_JSON_SHAPE}"
    )
