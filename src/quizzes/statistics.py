"""
Estadísticas sobre respuestas completadas de una evaluación.

Las preguntas sin respuesta en el detalle de un estudiante cuentan como
incorrectas, de modo que todos los porcentajes usan el total de preguntas
de la evaluación como denominador.
"""

from typing import Dict, Any, List

from src.shared.constants import RESPONSE_STATES


def _percentage(part: int, total: int) -> float:
    return round(part * 100.0 / total, 1) if total else 0.0


def completed_responses(db, quiz_id) -> List[Dict[str, Any]]:
    return list(db.student_responses.find({"quiz_id": quiz_id, "state": RESPONSE_STATES["COMPLETED"]}))


def _correct_ids(response: Dict[str, Any]) -> set:
    return {str(d.get("question_id")) for d in response.get("details") or [] if d.get("is_correct")}


def question_accuracy(questions: List[Dict[str, Any]], responses: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Aciertos, errores y porcentaje de cada pregunta en el orden de la evaluación"""
    correct_sets = [_correct_ids(r) for r in responses]
    total = len(responses)
    stats = []
    for question in sorted(questions, key=lambda q: q.get("order", 0)):
        qid = str(question["_id"])
        correct = sum(1 for ids in correct_sets if qid in ids)
        stats.append({
            "question_id": question["_id"],
            "order": question.get("order"),
            "prompt": question.get("prompt", ""),
            "correct": correct,
            "incorrect": total - correct,
            "total": total,
            "percentage": _percentage(correct, total)
        })
    return stats


def student_results(questions: List[Dict[str, Any]], responses: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    question_ids = {str(q["_id"]) for q in questions}
    results = []
    for response in responses:
        correct = len(_correct_ids(response) & question_ids)
        results.append({
            "student_id": response.get("student_id"),
            "response_id": response.get("_id"),
            "correct": correct,
            "total": len(question_ids),
            "percentage": _percentage(correct, len(question_ids))
        })
    return results


def summarize_responses(questions: List[Dict[str, Any]], responses: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Resumen agregado de una evaluación.

    Returns:
        Dict con total_responses, fully_correct, accuracy, average_percentage y per_question
    """
    per_student = student_results(questions, responses)
    question_count = len(questions)
    total_correct = sum(r["correct"] for r in per_student)
    return {
        "total_responses": len(responses),
        "question_count": question_count,
        "fully_correct": sum(1 for r in per_student if question_count and r["correct"] == question_count),
        "accuracy": _percentage(total_correct, len(responses) * question_count),
        "average_percentage": round(sum(r["percentage"] for r in per_student) / len(per_student), 1)
        if per_student else 0.0,
        "per_question": question_accuracy(questions, responses)
    }
