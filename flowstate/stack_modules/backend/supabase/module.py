"""Supabase — adds auth routes and views to Vue projects."""

from __future__ import annotations

from flowstate.core.models.implementation import ModuleImplementation

_LOGIN_VIEW = """\
<script setup>
import { ref } from 'vue'
import { supabase } from '@/services/supabase'

const email = ref('')
const sent = ref(false)

async function signIn() {
  const { error } = await supabase.auth.signInWithOtp({ email: email.value })
  sent.value = !error
}
</script>

<template>
  <main>
    <h1>Sign in to __PROJECT_NAME__</h1>
    <p v-if="sent">Check your inbox for a login link.</p>
    <form v-else @submit.prevent="signIn">
      <input v-model="email" type="email" placeholder="you@example.com" required />
      <button type="submit">Send magic link</button>
    </form>
  </main>
</template>
"""

_ACCOUNT_VIEW = """\
<script setup>
import { supabase } from '@/services/supabase'

const { data } = await supabase.auth.getUser()
</script>

<template>
  <main>
    <h1>Account</h1>
    <p>{{ data.user?.email }}</p>
  </main>
</template>
"""


class SupabaseImplementation(ModuleImplementation):

    def get_template_files(self, context):
        if "vue3" not in context.modules:
            return {}
        return {
            "src/views/LoginView.vue": _LOGIN_VIEW,
            "src/views/AccountView.vue": _ACCOUNT_VIEW,
            "src/router/index.js": {
                "routes": [
                    {"path": "/login", "name": "login", "component": "@/views/LoginView.vue"},
                    {
                        "path": "/account",
                        "name": "account",
                        "component": "@/views/AccountView.vue",
                        "meta": {"requiresAuth": True},
                    },
                ],
            },
        }
