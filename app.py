import asyncio

from semiologix.cases import CaseStore
from semiologix.gemini_service import GeminiService
from semiologix.schemas import HIDDEN_FIELDS
from semiologix.session import dispatch, initial_state
from semiologix.utils import anamnesis_to_prompt, hypothesis_matches

DIFFICULTIES = ["Fácil", "Intermediário", "Difícil", "Extremo"]


def print_log(state, start: int = 0):
    speakers = {"request": "Você", "response": "Simulador", "system": "Sistema"}
    for entry in state["investigation_log"][start:]:
        print(f"[{speakers[entry.kind]}] {entry.text}")


def print_diagnoses(state):
    print("\nDiagnósticos da IA:")
    for diagnosis in state["diagnoses"] + state["differential_diagnoses"]:
        print(f"  - {diagnosis.name} ({diagnosis.probability}%): {diagnosis.rationale}")


def choose_difficulty() -> str:
    for i, difficulty in enumerate(DIFFICULTIES, start=1):
        print(f"{i}. {difficulty}")
    choice = input("Dificuldade [2]: ").strip()
    if choice.isdigit() and 1 <= int(choice) <= len(DIFFICULTIES):
        return DIFFICULTIES[int(choice) - 1]
    return "Intermediário"


async def training_procedure(service: GeminiService):
    """
    Run one training simulation: generate a case, let the student investigate,
    then collect hypotheses and plan and show the preceptor's evaluation.

    Args:
        service: AI service used by the session
    """
    difficulty = choose_difficulty()
    specialty = input("Especialidade [Geral]: ").strip() or "Geral"

    print("\nGerando caso clínico...")
    state = await dispatch(initial_state(training_mode=True), "generate_case", service,
                           difficulty=difficulty, specialty=specialty)
    if state["error"]:
        print(state["error"])
        return None

    print_log(state)
    print(f"\n{anamnesis_to_prompt(state['anamnesis'])}\n")

    print("Solicite exames ou manobras do exame físico. Finalize com 'e'.")
    while True:
        request = input("Solicitação: ")
        if request.lower() == 'e':
            break
        shown = len(state["investigation_log"])
        state = await dispatch(state, "investigate", service, request=request)
        print_log(state, start=shown)

    principal = input("\nHipótese principal: ").strip()
    differentials = [d.strip() for d in input("Diferenciais (separados por ';'): ").split(";") if d.strip()]
    plan = {
        "exams": input("Exames solicitados: "),
        "prescription": input("Prescrição: "),
        "referrals": input("Encaminhamentos: "),
    }

    print("\nAvaliando sua performance...")
    state = await dispatch(state, "evaluate", service,
                           hypotheses={"principal": principal, "differentials": differentials}, plan=plan)
    if state["error"]:
        print(state["error"])

    anamnesis = state["anamnesis"]
    if hypothesis_matches(principal, anamnesis.correct_diagnosis):
        print("Hipótese principal correta!")
    print(f"Diagnóstico correto: {anamnesis.correct_diagnosis}")
    print(f"Raciocínio: {anamnesis.diagnosis_summary}")

    evaluation = state["evaluation"]
    if evaluation:
        print(f"\nPontuação: {evaluation.score}/100")
        print(f"Cálculo: {evaluation.score_rationale}")
        print(f"Pontos fortes: {evaluation.strengths}")
        print(f"Pontos a melhorar: {evaluation.improvements}")
        print(f"Análise da conduta: {evaluation.conduct_analysis}")
        print(f"Raciocínio correto: {evaluation.correct_reasoning}")
    print_diagnoses(state)

    # Hidden case data, shown only once the evaluation is done
    for field in HIDDEN_FIELDS[2:]:
        print(f"\n{field}:\n{getattr(anamnesis, field)}")
    return evaluation


def main():
    store = CaseStore()
    service = GeminiService(api_key=store.get_api_key())
    print("\nOlá, sou o simulador de casos clínicos do SemiologiX.")
    while True:
        asyncio.run(training_procedure(service))
        if input("\nNovo caso? Sair com 'e': ").lower() == 'e':
            print("Encerrando simulação....")
            break


if __name__ == "__main__":
    main()
