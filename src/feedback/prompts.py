"""
Instrucciones de retroalimentación por audiencia.

Cada audiencia tiene su propio modelo de contenido, temperatura y límite de
salida; AUDIENCE_SPECS es la única tabla que los relaciona.
"""

from dataclasses import dataclass
from typing import Dict, Any, List, Type

from src.shared.constants import FEEDBACK_AUDIENCES
from .models import (
    FeedbackDraft, StudentFeedbackDraft, TeacherIndividualFeedbackDraft,
    TeacherGroupFeedbackDraft, GuardianFeedbackDraft
)


@dataclass(frozen=True)
class AudienceSpec:
    draft_model: Type[FeedbackDraft]
    system_prompt: str
    temperature: float
    max_tokens: int
    json_shape: str


AUDIENCE_SPECS: Dict[str, AudienceSpec] = {
    FEEDBACK_AUDIENCES["STUDENT"]: AudienceSpec(
        draft_model=StudentFeedbackDraft,
        system_prompt=(
            "Eres un docente que escribe retroalimentación personalizada, constructiva y motivadora "
            "para un estudiante. Sé claro, específico y orientado a la mejora. "
            "Responde únicamente con un objeto JSON válido."
        ),
        temperature=0.8,
        max_tokens=1000,
        json_shape="""{
  "strengths": ["fortaleza 1", "fortaleza 2"],
  "growth_areas": ["área 1", "área 2"],
  "motivational_message": "mensaje personalizado",
  "suggestions": ["sugerencia 1", "sugerencia 2"]
}"""
    ),
    FEEDBACK_AUDIENCES["TEACHER_INDIVIDUAL"]: AudienceSpec(
        draft_model=TeacherIndividualFeedbackDraft,
        system_prompt=(
            "Eres un asistente pedagógico. Escribes para el profesor un análisis del desempeño "
            "individual de un estudiante con recomendaciones pedagógicas específicas. "
            "Responde únicamente con un objeto JSON válido."
        ),
        temperature=0.7,
        max_tokens=1000,
        json_shape="""{
  "performance_analysis": "análisis del desempeño",
  "detected_strengths": ["fortaleza 1", "fortaleza 2"],
  "detected_weaknesses": ["debilidad 1", "debilidad 2"],
  "pedagogical_recommendations": ["recomendación 1", "recomendación 2"],
  "comprehension_level": "básico | intermedio | avanzado"
}"""
    ),
    FEEDBACK_AUDIENCES["TEACHER_GROUP"]: AudienceSpec(
        draft_model=TeacherGroupFeedbackDraft,
        system_prompt=(
            "Eres un experto en análisis educativo. Analizas el desempeño de un grupo completo "
            "e identificas patrones y áreas de mejora. Responde únicamente con un objeto JSON válido."
        ),
        temperature=0.7,
        max_tokens=1500,
        json_shape="""{
  "general_summary": "resumen del desempeño del grupo",
  "group_strengths": ["fortaleza 1", "fortaleza 2"],
  "group_weaknesses": ["debilidad 1", "debilidad 2"],
  "detected_patterns": ["patrón 1", "patrón 2"],
  "recommendations": ["recomendación 1", "recomendación 2"],
  "achieved_learnings": ["aprendizaje 1"],
  "pending_learnings": ["aprendizaje pendiente 1"]
}"""
    ),
    FEEDBACK_AUDIENCES["GUARDIAN"]: AudienceSpec(
        draft_model=GuardianFeedbackDraft,
        system_prompt=(
            "Eres un comunicador educativo. Escribes para las familias un resumen del desempeño "
            "de su hijo o hija con un tono positivo y fácil de entender para personas no "
            "especializadas en educación. Responde únicamente con un objeto JSON válido."
        ),
        temperature=0.8,
        max_tokens=800,
        json_shape="""{
  "performance_summary": "resumen claro del desempeño",
  "achievements": ["logro 1", "logro 2"],
  "support_areas": ["área de apoyo 1", "área de apoyo 2"],
  "encouraging_message": "mensaje positivo",
  "home_suggestions": ["sugerencia para casa 1", "sugerencia para casa 2"]
}"""
    ),
}


def _student_name(student: Dict[str, Any]) -> str:
    name = f"{student.get('first_name', '')} {student.get('last_name', '')}".strip()
    return name or "Estudiante"


def _answers_detail(response: Dict[str, Any], questions: List[Dict[str, Any]],
                    with_timing: bool) -> str:
    details = {str(d.get("question_id")): d for d in response.get("details") or []}
    lines = []
    for question in questions:
        detail = details.get(str(question["_id"]), {})
        mark = "Correcta" if detail.get("is_correct") else "Incorrecta"
        line = f"Pregunta {question.get('order')}: {question.get('prompt', '')}\n" \
               f"Respuesta: {detail.get('answer') or 'Sin respuesta'} ({mark})"
        if with_timing:
            line += f" - {detail.get('time_seconds') or 0}s"
        elif question.get("feedback"):
            line += f"\nExplicación: {question['feedback']}"
        lines.append(line)
    return "\n\n".join(lines)


def build_student_prompt(audience: str, student: Dict[str, Any], result: Dict[str, Any],
                         response: Dict[str, Any], questions: List[Dict[str, Any]]) -> str:
    """Instrucción de usuario para las audiencias individuales (estudiante, profesor y familia)"""
    spec = AUDIENCE_SPECS[audience]
    header = (
        f"Estudiante: {_student_name(student)}\n"
        f"Puntaje: {result['correct']}/{result['total']} ({result['percentage']}%)"
    )
    if audience == FEEDBACK_AUDIENCES["GUARDIAN"]:
        body = ""
    else:
        body = "\n\n" + _answers_detail(
            response, questions,
            with_timing=audience == FEEDBACK_AUDIENCES["TEACHER_INDIVIDUAL"]
        )
    return f"{header}{body}\n\nDevuelve exactamente este formato JSON:\n{spec.json_shape}"


def build_group_prompt(group: Dict[str, Any], students: Dict[str, Dict[str, Any]],
                       results: List[Dict[str, Any]], group_stats: Dict[str, Any]) -> str:
    spec = AUDIENCE_SPECS[FEEDBACK_AUDIENCES["TEACHER_GROUP"]]
    roster = "\n".join(
        f"- {_student_name(students.get(str(r['student_id']), {}))}: {r['percentage']}% ({r['correct']}/{r['total']})"
        for r in results
    )
    per_question = "\n".join(
        f"- Pregunta {q['order']}: {q['prompt']} - {q['percentage']}% de aciertos"
        for q in group_stats.get("per_question", [])
    )
    return (
        f"Grupo: {group.get('name') or 'N/A'}\n"
        f"Total de estudiantes: {group_stats.get('total_responses', 0)}\n"
        f"Promedio del grupo: {group_stats.get('average_percentage', 0)}%\n\n"
        f"Desempeño individual:\n{roster}\n\n"
        f"Preguntas de la evaluación:\n{per_question}\n\n"
        f"Devuelve exactamente este formato JSON:\n{spec.json_shape}"
    )
