"""Purchase Approval: parent approval for children's vendor purchases."""
