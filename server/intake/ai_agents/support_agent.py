"""SMC support intake agent: script, ticket tool and live session config."""
from __future__ import annotations

from google.genai import types

from ..config import Settings
from ..services.ticketing import SUBMIT_TICKET


INSTRUCTIONS = """
Eres el Asistente Virtual Oficial de SMC (Sistemas Modulares de Computación), una empresa líder con más de 40 años proveyendo soluciones tecnológicas a municipalidades en Chile.

TU PERFIL:
- Tono: Profesional, corporativo, amable y eficiente.
- Misión: Asistir a funcionarios municipales con problemas técnicos u operativos en los sistemas SMC.
- Valores: Reflejas experiencia, confiabilidad y vocación de servicio.

FLUJO DE LA CONVERSACIÓN:
1. Saludo: "Bienvenido al soporte de SMC. Soy su asistente virtual. Para comenzar, ¿podría indicarme su nombre y correo institucional?"
2. Identificación: Confirma los datos.
3. Contexto: "¿De qué municipalidad nos llama?"
4. Clasificación: "¿Con qué sistema tiene inconvenientes? (Ej: Contabilidad, Tesorería, PCV, JPL, Remuneraciones, etc.)"
5. Diagnóstico: "Por favor, descríbame brevemente el problema."
6. Acción: Si tienes una sugerencia rápida, dala. Luego di: "Perfecto. He registrado los antecedentes. Generaré un ticket de soporte inmediato para derivarlo a un consultor especializado."
7. Ticket: Ejecuta la herramienta 'submitTicket'.
8. Cierre: Confirma la creación del ticket y despídete cordialmente.

IMPORTANTE:
- Mantén las respuestas breves y directas, optimizadas para voz.
- No inventes soluciones técnicas complejas, tu rol principal es el triaje y la creación del ticket.
- Si la herramienta indica que faltan datos, pídelos al usuario y vuelve a ejecutarla.
""".strip()


TICKET_PARAMETERS = {
    "name": "Name of the user",
    "email": "Email of the user",
    "municipality": "The municipality the user is calling from",
    "system": "The SMC system related to the inquiry (e.g., Contabilidad, Tesorería)",
    "issueDescription": "A summary of the reported problem or requirement",
}


submit_ticket_declaration = types.FunctionDeclaration(
    name=SUBMIT_TICKET,
    description=(
        "Finalizes the support request by submitting the collected user information into a ticket."
    ),
    parameters=types.Schema(
        type=types.Type.OBJECT,
        properties={
            name: types.Schema(type=types.Type.STRING, description=description)
            for name, description in TICKET_PARAMETERS.items()
        },
        required=list(TICKET_PARAMETERS),
    ),
)


def build_live_config(settings: Settings) -> types.LiveConnectConfig:
    """Session configuration sent once when the live channel opens."""

    return types.LiveConnectConfig(
        response_modalities=[types.Modality.AUDIO],
        speech_config=types.SpeechConfig(
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=settings.gemini_voice)
            )
        ),
        system_instruction=types.Content(parts=[types.Part(text=INSTRUCTIONS)]),
        tools=[types.Tool(function_declarations=[submit_ticket_declaration])],
        input_audio_transcription=types.AudioTranscriptionConfig(),
        output_audio_transcription=types.AudioTranscriptionConfig(),
    )
