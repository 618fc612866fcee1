"""
Seed starter automation rules.
Rules are created inactive and in test mode; an admin reviews and enables them.
Existing rules with the same name are left untouched.
"""
import asyncio
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import get_db_context
from models import ActionConfig, AutomationRule, TriggerEvent
from services.variable_substitution import variable_substitution

STARTER_RULES = [
    (
        "Confirmação de Agendamento",
        TriggerEvent.EVENT_CREATED,
        "Olá {cliente}, seu evento {event_name} está agendado para {data} no {local}. Obrigado!",
    ),
    (
        "Entrada Concluída",
        TriggerEvent.CHECKLIST_ENTRADA,
        "Olá {cliente}, confirmamos a entrada em {data} no {local}.",
    ),
    (
        "Agradecimento Pós-Evento",
        TriggerEvent.CHECKLIST_SAIDA,
        "Olá {cliente}, obrigado por escolher nossa equipe para o evento de {data}!",
    ),
]


async def seed_automations():
    async with get_db_context() as db:
        created = 0
        for name, trigger, message in STARTER_RULES:
            validation = variable_substitution.validate(message)
            if not validation["valid"]:
                print(f"Skipping {name}: {validation['errors']}")
                continue
            if await db.automations.find_one({"name": name}, {"_id": 1}):
                print(f"Exists: {name}")
                continue

            rule = AutomationRule(
                name=name,
                active=False,
                trigger_event=trigger,
                action_config=ActionConfig(message=message, test_mode=True),
            )
            doc = rule.model_dump()
            doc["trigger_event"] = rule.trigger_event.value
            doc["action_type"] = rule.action_type.value
            await db.automations.insert_one(doc)
            created += 1
            print(f"Created: {name} ({trigger.value})")

        print(f"Inserted {created} automation(s)")


if __name__ == "__main__":
    asyncio.run(seed_automations())
